"""Centralized configuration for environment variables.

This module is the single source of truth for configuration used across the
application. Import constants from here rather than calling os.getenv directly
in multiple places.
"""

from __future__ import annotations

import os
from typing import Final

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


# --- MongoDB ---
MONGODB_URI: Final[str] = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DATABASE: Final[str] = os.getenv("MONGODB_DATABASE", "freight")
MONGODB_MAX_POOL_SIZE: Final[int] = _env_int("MONGODB_MAX_POOL_SIZE", 50)
MONGODB_CONNECTION_TIMEOUT_MS: Final[int] = _env_int(
    "MONGODB_CONNECTION_TIMEOUT_MS", 5000
)
MONGODB_SERVER_SELECTION_TIMEOUT_MS: Final[int] = _env_int(
    "MONGODB_SERVER_SELECTION_TIMEOUT_MS", 10000
)
MONGODB_SOCKET_TIMEOUT_MS: Final[int] = _env_int("MONGODB_SOCKET_TIMEOUT_MS", 30000)

# "auto" probes the server once, "on" requires transactions, "off" never uses them
MONGODB_TRANSACTIONS: Final[str] = os.getenv("MONGODB_TRANSACTIONS", "auto").lower()
MONGODB_TRANSACTION_RETRIES: Final[int] = _env_int("MONGODB_TRANSACTION_RETRIES", 3)


# --- Route rules ---
PROFITABILITY_THRESHOLD_PCT: Final[float] = _env_float(
    "PROFITABILITY_THRESHOLD_PCT", 15.0
)
ROUTE_MAX_DISTANCE_KM: Final[float] = 5000.0
ROUTE_MAX_ESTIMATED_HOURS: Final[float] = 168.0
ROUTE_MIN_SPEED_KMH: Final[float] = 10.0
ROUTE_MAX_SPEED_KMH: Final[float] = 120.0
DEFAULT_PROFITABLE_ROUTES_LIMIT: Final[int] = 10

# --- Trip history ---
DEFAULT_TRIP_PAGE_SIZE: Final[int] = _env_int("DEFAULT_TRIP_PAGE_SIZE", 50)
MAX_TRIP_PAGE_SIZE: Final[int] = _env_int("MAX_TRIP_PAGE_SIZE", 200)

# Used in generated income descriptions when a trip has no route
CUSTOM_DESTINATION_LABEL: Final[str] = "Destino personalizado"


# --- HTTP / logging ---
CORS_ALLOWED_ORIGINS: Final[list[str]] = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()


__all__ = [
    "CORS_ALLOWED_ORIGINS",
    "CUSTOM_DESTINATION_LABEL",
    "DEFAULT_PROFITABLE_ROUTES_LIMIT",
    "DEFAULT_TRIP_PAGE_SIZE",
    "LOG_LEVEL",
    "MAX_TRIP_PAGE_SIZE",
    "MONGODB_CONNECTION_TIMEOUT_MS",
    "MONGODB_DATABASE",
    "MONGODB_MAX_POOL_SIZE",
    "MONGODB_SERVER_SELECTION_TIMEOUT_MS",
    "MONGODB_SOCKET_TIMEOUT_MS",
    "MONGODB_TRANSACTIONS",
    "MONGODB_TRANSACTION_RETRIES",
    "MONGODB_URI",
    "PROFITABILITY_THRESHOLD_PCT",
    "ROUTE_MAX_DISTANCE_KM",
    "ROUTE_MAX_ESTIMATED_HOURS",
    "ROUTE_MAX_SPEED_KMH",
    "ROUTE_MIN_SPEED_KMH",
]
