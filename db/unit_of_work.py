"""Unit of work over Beanie documents.

One service operation opens one ``UnitOfWork``. Reads go through an identity
map so every component in the operation (state machine, aggregator, ledger
bridge) sees the same in-memory instance of a document, including changes
that are staged but not yet written. Writes are staged and flushed together
by ``commit()``:

- inside a MongoDB multi-document transaction when the server supports it,
  retrying transient transaction errors with exponential backoff;
- otherwise in staging order, undoing already-applied writes if a later one
  fails.

Updates and deletes are compare-and-set on the document ``version`` field in
both modes, so a document changed by someone else since it was read makes the
whole commit fail with ``ConcurrentModificationError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from beanie import Document, PydanticObjectId
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
)

import config
from core.exceptions import (
    ConcurrentModificationError,
    DuplicateResourceError,
    RepositoryUnavailable,
)
from date_utils import get_current_utc_time

if TYPE_CHECKING:
    from db.repositories import RouteRepository, TripRepository

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=Document)
_Key = tuple[type[Document], PydanticObjectId]

_INSERT = "insert"
_UPDATE = "update"
_DELETE = "delete"


def _key(doc: Document) -> _Key:
    return (type(doc), doc.id)


def _to_storage(doc: Document) -> dict[str, Any]:
    data = doc.model_dump(exclude={"id", "revision_id"})
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


def _is_transient(e: PyMongoError) -> bool:
    if hasattr(e, "has_error_label"):
        return e.has_error_label("TransientTransactionError")
    return False


class UnitOfWork:
    """Identity map plus staged writes for one operation."""

    def __init__(
        self,
        client: Any = None,
        *,
        use_transactions: bool | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._client = client
        self._use_transactions = use_transactions
        self._max_retries = (
            config.MONGODB_TRANSACTION_RETRIES if max_retries is None else max_retries
        )
        self._identity: dict[_Key, Document] = {}
        self._loaded_versions: dict[_Key, int] = {}
        self._snapshots: dict[_Key, dict[str, Any]] = {}
        self._staged: dict[_Key, str] = {}
        self._committed = False
        self._routes: RouteRepository | None = None
        self._trips: TripRepository | None = None

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._staged and not self._committed:
            logger.debug("Discarding %d staged writes", len(self._staged))
        self._staged.clear()

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    @property
    def routes(self) -> RouteRepository:
        if self._routes is None:
            from db.repositories import RouteRepository

            self._routes = RouteRepository(self)
        return self._routes

    @property
    def trips(self) -> TripRepository:
        if self._trips is None:
            from db.repositories import TripRepository

            self._trips = TripRepository(self)
        return self._trips

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def track(self, doc: D) -> D:
        """Register a loaded document, returning the canonical instance."""
        key = _key(doc)
        existing = self._identity.get(key)
        if existing is not None:
            return existing  # type: ignore[return-value]
        self._identity[key] = doc
        self._loaded_versions[key] = getattr(doc, "version", 0)
        self._snapshots[key] = _to_storage(doc)
        return doc

    def is_tracked(self, doc: Document) -> bool:
        return doc.id is not None and _key(doc) in self._identity

    def _is_deleted(self, key: _Key) -> bool:
        return self._staged.get(key) == _DELETE

    async def get(self, model: type[D], doc_id: PydanticObjectId) -> D | None:
        key = (model, doc_id)
        if key in self._identity:
            return None if self._is_deleted(key) else self._identity[key]  # type: ignore[return-value]
        try:
            doc = await model.get(doc_id)
        except PyMongoError as e:
            msg = f"Failed to load {model.__name__} {doc_id}"
            raise RepositoryUnavailable(msg, {"error": str(e)}) from e
        return self.track(doc) if doc is not None else None

    async def find(
        self,
        model: type[D],
        query: dict[str, Any],
        predicate: Callable[[D], bool],
    ) -> list[D]:
        """Query the database and overlay documents touched in this unit.

        ``predicate`` must express the same condition as ``query``; it is
        re-applied to the merged set so staged changes are reflected.
        """
        try:
            loaded = await model.find(query).to_list()
        except PyMongoError as e:
            msg = f"Failed to query {model.__name__}"
            raise RepositoryUnavailable(msg, {"error": str(e)}) from e

        merged: dict[_Key, D] = {}
        for doc in loaded:
            tracked = self.track(doc)
            merged[_key(tracked)] = tracked
        for key, doc in self._identity.items():
            if key[0] is model and key not in merged:
                merged[key] = doc  # type: ignore[assignment]
        return [
            doc
            for key, doc in merged.items()
            if not self._is_deleted(key) and predicate(doc)
        ]

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def add(self, doc: D) -> D:
        """Stage a new document for insertion."""
        if doc.id is None:
            doc.id = PydanticObjectId()
        key = _key(doc)
        self._identity[key] = doc
        self._staged[key] = _INSERT
        return doc

    def save(self, doc: Document) -> None:
        """Stage an update of a tracked or newly added document."""
        key = _key(doc)
        if key not in self._identity:
            msg = f"{type(doc).__name__} {doc.id} is not tracked by this unit of work"
            raise ValueError(msg)
        if self._staged.get(key) in (_INSERT, _UPDATE):
            return
        if self._is_deleted(key):
            msg = f"{type(doc).__name__} {doc.id} is staged for deletion"
            raise ValueError(msg)
        self._staged[key] = _UPDATE

    def delete(self, doc: Document) -> None:
        key = _key(doc)
        if self._staged.get(key) == _INSERT:
            del self._staged[key]
            del self._identity[key]
            return
        if key not in self._identity:
            msg = f"{type(doc).__name__} {doc.id} is not tracked by this unit of work"
            raise ValueError(msg)
        self._staged[key] = _DELETE

    @property
    def pending(self) -> list[tuple[str, Document]]:
        return [(op, self._identity[key]) for key, op in self._staged.items()]

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def _apply(self, op: str, doc: Document, session: Any = None) -> None:
        key = _key(doc)
        collection = type(doc).get_motor_collection()
        now = get_current_utc_time()

        if op == _INSERT:
            if hasattr(doc, "updated_at"):
                doc.updated_at = now
            await doc.insert(session=session)
            return

        expected = self._loaded_versions.get(key, 0)
        if op == _UPDATE:
            if hasattr(doc, "updated_at"):
                doc.updated_at = now
            doc.version = expected + 1
            result = await collection.update_one(
                {"_id": doc.id, "version": expected},
                {"$set": _to_storage(doc)},
                session=session,
            )
            matched = result.matched_count
        else:
            result = await collection.delete_one(
                {"_id": doc.id, "version": expected},
                session=session,
            )
            matched = result.deleted_count

        if not matched:
            doc.version = expected
            msg = f"{type(doc).__name__} {doc.id} was modified concurrently"
            raise ConcurrentModificationError(
                msg, {"collection": collection.name, "id": str(doc.id)}
            )

    async def _undo(self, op: str, doc: Document) -> None:
        key = _key(doc)
        collection = type(doc).get_motor_collection()
        if op == _INSERT:
            await collection.delete_one({"_id": doc.id})
        elif op == _UPDATE:
            await collection.update_one(
                {"_id": doc.id, "version": doc.version},
                {"$set": self._snapshots[key]},
            )
        else:
            await collection.insert_one({"_id": doc.id, **self._snapshots[key]})

    async def _flush_sequential(self, writes: list[tuple[str, Document]]) -> None:
        applied: list[tuple[str, Document]] = []
        try:
            for op, doc in writes:
                await self._apply(op, doc)
                applied.append((op, doc))
        except Exception:
            for op, doc in reversed(applied):
                try:
                    await self._undo(op, doc)
                except PyMongoError:
                    logger.exception(
                        "Failed to undo %s of %s %s", op, type(doc).__name__, doc.id
                    )
            raise

    async def _flush_in_transaction(self, writes: list[tuple[str, Document]]) -> None:
        retry_count = 0
        while True:
            versions = {_key(doc): getattr(doc, "version", 0) for _, doc in writes}
            try:
                async with await self._client.start_session() as session:
                    async with session.start_transaction():
                        for op, doc in writes:
                            await self._apply(op, doc, session=session)
                return
            except (ConnectionFailure, OperationFailure) as e:
                for _, doc in writes:
                    if hasattr(doc, "version"):
                        doc.version = versions[_key(doc)]
                if _is_transient(e) and retry_count < self._max_retries:
                    retry_count += 1
                    delay = 0.1 * (2**retry_count)
                    logger.warning(
                        "Transient transaction error (attempt %d/%d), retrying in %.1fs: %s",
                        retry_count,
                        self._max_retries,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

    async def _should_use_transactions(self) -> bool:
        if self._use_transactions is not None:
            return self._use_transactions and self._client is not None
        from db.manager import db_manager

        if not await db_manager.supports_transactions():
            return False
        if self._client is None:
            self._client = db_manager.client
        return True

    async def commit(self) -> None:
        """Flush every staged write as one unit."""
        if self._committed:
            msg = "Unit of work already committed"
            raise RuntimeError(msg)
        writes = self.pending
        if not writes:
            self._committed = True
            return

        try:
            if await self._should_use_transactions():
                await self._flush_in_transaction(writes)
            else:
                await self._flush_sequential(writes)
        except DuplicateKeyError as e:
            msg = "Duplicate key while committing changes"
            raise DuplicateResourceError(msg, {"error": str(e)}) from e
        except PyMongoError as e:
            logger.error("Commit of %d writes failed: %s", len(writes), e)
            msg = "Database unavailable while committing changes"
            raise RepositoryUnavailable(msg, {"error": str(e)}) from e

        for op, doc in writes:
            key = _key(doc)
            if op == _DELETE:
                self._identity.pop(key, None)
                continue
            self._loaded_versions[key] = getattr(doc, "version", 0)
            self._snapshots[key] = _to_storage(doc)
        self._staged.clear()
        self._committed = True
        logger.debug("Committed %d writes", len(writes))


def unit_of_work_factory(
    client: Any = None,
    *,
    use_transactions: bool | None = None,
) -> Callable[[], UnitOfWork]:
    """Build a zero-argument factory, as services expect."""

    def _factory() -> UnitOfWork:
        return UnitOfWork(client, use_transactions=use_transactions)

    return _factory


async def run_in_unit_of_work(
    factory: Callable[[], UnitOfWork],
    operation: Callable[[UnitOfWork], Awaitable[Any]],
) -> Any:
    """Run ``operation`` in a fresh unit of work and commit it."""
    async with factory() as uow:
        result = await operation(uow)
        await uow.commit()
        return result
