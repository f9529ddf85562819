"""
PlaceShare Backend: Document Store
===================================

What:  The persistence interface the services talk to: find_by_id, find_one,
       find, insert, update, delete, plus with_transaction(fn).
How:   Each call to with_transaction() opens a fresh AsyncSession from the
       session factory, begins one transaction, runs `fn` with a StoreSession
       bound to it, awaits every write, then commits. Any exception raised
       inside `fn` rolls the whole transaction back and propagates.
Who:   Used by ConsistencyManager, PlaceService and AccountService.

Transaction scope:
    open → find/insert/update/delete (each awaited, flushed in order) → commit
    on any exception → rollback → re-raise (driver errors become StoreError)

    Documents whose id lists are rewritten (User.places, Place.saved) are
    loaded with lock=True, so concurrent operations on the same document
    run one after the other instead of overwriting each other's lists.

    Nothing is written outside with_transaction(); readers in other sessions
    never observe a partially applied operation.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from placeshare.database import async_session_factory
from placeshare.exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")


class StoreSession:
    """
    Document operations bound to one open session/transaction.

    Writes are flushed immediately so ordering is explicit and failures
    surface at the call site, before commit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(
        self,
        model: Type[M],
        doc_id: Any,
        populate: Sequence[Any] = (),
        lock: bool = False,
    ) -> Optional[M]:
        """
        Load one document by primary key, or None.

        `populate` lists relationships to resolve in the same round trip,
        e.g. populate=[Place.creator]. `lock=True` takes a row lock
        (SELECT ... FOR UPDATE) held until the transaction ends; use it for
        every document whose id lists are read and written back.
        """
        options = [selectinload(rel) for rel in populate]
        return await self.session.get(
            model,
            doc_id,
            options=options,
            with_for_update=lock or None,
            populate_existing=lock,
        )

    async def find_one(self, model: Type[M], *criteria: Any) -> Optional[M]:
        result = await self.session.execute(select(model).where(*criteria).limit(1))
        return result.scalars().first()

    async def find(
        self,
        model: Type[M],
        *criteria: Any,
        order_by: Optional[Any] = None,
        lock: bool = False,
    ) -> List[M]:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def insert(self, document: M) -> M:
        """Add a new document; the flush assigns defaults (ids, timestamps)."""
        self.session.add(document)
        await self.session.flush()
        return document

    async def update(self, document: M, **changes: Any) -> M:
        for field, value in changes.items():
            setattr(document, field, value)
        await self.session.flush()
        return document

    async def delete(self, document: Any) -> None:
        await self.session.delete(document)
        await self.session.flush()

    async def delete_where(self, model: Type[Any], *criteria: Any) -> int:
        """Bulk delete every document matching `criteria`; returns the row count."""
        result = await self.session.execute(delete(model).where(*criteria))
        return result.rowcount or 0

    async def delete_all(self, documents: Iterable[Any]) -> None:
        for document in documents:
            await self.session.delete(document)
        await self.session.flush()


class DocumentStore:
    """
    Entry point for reads and atomic writes.

    `session_class` may be overridden (tests inject a StoreSession subclass
    that fails on a chosen write).
    """

    session_class: Type[StoreSession] = StoreSession

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session_factory

    async def with_transaction(self, fn: Callable[[StoreSession], Awaitable[T]]) -> T:
        """
        Run `fn` inside a single transaction.

        Returns whatever `fn` returns after a successful commit.

        Raises:
            Any PlaceShareError raised by `fn` (after rollback)
            StoreError: the database rejected a statement or the commit
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await fn(self.session_class(session))
        except SQLAlchemyError as e:
            logger.error("Transaction aborted: %s", str(e), exc_info=True)
            raise StoreError(
                context={"error_type": type(e).__name__},
            ) from e

    async def with_session(self, fn: Callable[[StoreSession], Awaitable[T]]) -> T:
        """Run a read-only `fn`; the session is closed (and rolled back) afterwards."""
        try:
            async with self.session_factory() as session:
                return await fn(self.session_class(session))
        except SQLAlchemyError as e:
            logger.error("Read failed: %s", str(e), exc_info=True)
            raise StoreError(
                message="Could not read from the database. Please try again later.",
                context={"error_type": type(e).__name__},
            ) from e


# ── Singleton Instance ────────────────────────────────────────────────────
document_store = DocumentStore()
