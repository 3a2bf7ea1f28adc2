"""
Database connection manager module.

Provides a singleton DatabaseManager class for the MongoDB client, Beanie
initialization and the cached probe that tells the unit of work whether
multi-document transactions are available.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC
from typing import Any, Self

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import OperationFailure, PyMongoError

import config

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Singleton class to manage the MongoDB client and database connection.

    This class handles:
    - Client lifecycle and event loop change detection
    - Beanie ODM initialization
    - Detection of transaction support (replica set / mongos vs standalone)
    """

    _instance: DatabaseManager | None = None
    _lock = threading.Lock()

    def __new__(cls) -> Self:
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._bound_loop: asyncio.AbstractEventLoop | None = None
        self._beanie_initialized = False
        self._transactions_supported: bool | None = None
        self._initialized = True

    def _initialize_client(self) -> None:
        """Create the Motor client with timeouts from configuration."""
        client_kwargs: dict[str, Any] = {
            "tz_aware": True,
            "tzinfo": UTC,
            "maxPoolSize": config.MONGODB_MAX_POOL_SIZE,
            "connectTimeoutMS": config.MONGODB_CONNECTION_TIMEOUT_MS,
            "serverSelectionTimeoutMS": config.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            "socketTimeoutMS": config.MONGODB_SOCKET_TIMEOUT_MS,
            "retryWrites": True,
            "retryReads": True,
            "appname": "freight-trips",
        }
        try:
            self._client = AsyncIOMotorClient(config.MONGODB_URI, **client_kwargs)
            self._db = self._client[config.MONGODB_DATABASE]
            self._bound_loop = self._get_current_loop()
            logger.info("MongoDB client initialized (database=%s)", config.MONGODB_DATABASE)
        except Exception:
            logger.exception("Failed to initialize MongoDB client")
            raise

    @staticmethod
    def _get_current_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _reset(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing MongoDB client: %s", e)
        self._client = None
        self._db = None
        self._bound_loop = None
        self._beanie_initialized = False
        self._transactions_supported = None

    def _check_loop_and_reconnect(self) -> None:
        current_loop = self._get_current_loop()
        if self._client is None or self._bound_loop is None:
            return
        if self._bound_loop.is_closed() or (
            current_loop is not None and current_loop is not self._bound_loop
        ):
            logger.info("Event loop changed, reconnecting MongoDB client")
            self._reset()

    @property
    def client(self) -> AsyncIOMotorClient:
        self._check_loop_and_reconnect()
        if self._client is None:
            self._initialize_client()
        if self._client is None:
            msg = "MongoDB client could not be initialized."
            raise RuntimeError(msg)
        return self._client

    @property
    def db(self) -> AsyncIOMotorDatabase:
        _ = self.client
        if self._db is None:
            msg = "Database instance could not be initialized."
            raise RuntimeError(msg)
        return self._db

    async def init_beanie(self) -> None:
        """Initialize Beanie ODM with all document models."""
        if self._beanie_initialized and self._bound_loop is self._get_current_loop():
            logger.debug("Beanie already initialized, skipping")
            return

        from beanie import init_beanie

        from db.models import ALL_DOCUMENT_MODELS

        await init_beanie(database=self.db, document_models=ALL_DOCUMENT_MODELS)
        self._beanie_initialized = True
        logger.info(
            "Beanie ODM initialized with %d document models",
            len(ALL_DOCUMENT_MODELS),
        )

    async def supports_transactions(self) -> bool:
        """Whether the server accepts multi-document transactions.

        Standalone servers reject them with "Transaction numbers are only
        allowed on a replica set member or mongos". The result is cached per
        client.
        """
        mode = config.MONGODB_TRANSACTIONS
        if mode == "off":
            return False
        if mode == "on":
            return True
        if self._transactions_supported is not None:
            return self._transactions_supported

        self._transactions_supported = await probe_transaction_support(self.client)
        return self._transactions_supported

    async def cleanup_connections(self) -> None:
        """Clean up MongoDB client connections."""
        if self._client:
            logger.info("Closing MongoDB client connections...")
        self._reset()


async def probe_transaction_support(client: Any) -> bool:
    """Open and immediately close a transaction on ``client``."""
    try:
        async with await client.start_session() as session:
            async with session.start_transaction():
                await client.admin.command("ping", session=session)
    except OperationFailure as e:
        if (
            "Transaction numbers" in str(e)
            or "transactions are only supported" in str(e).lower()
            or e.code == 20
        ):
            logger.warning(
                "MongoDB transactions are not supported (likely standalone instance). "
                "Falling back to ordered writes with version checks."
            )
            return False
        logger.warning("Error checking transaction support: %s", e)
        return False
    except (PyMongoError, NotImplementedError, AttributeError, TypeError) as e:
        logger.warning("Transaction support probe failed: %s", e)
        return False
    return True


# Singleton instance
db_manager = DatabaseManager()
