import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from core.config import DATABASE_URL
from core.db import make_engine
from core.exceptions import StorageFailure
from core.result import Result
from model.page import Page, PageLookup


class PageStore:
    """Page CRUD against the relational backend.

    Every operation is a coroutine returning a ``Result``; database errors are
    logged and handed back as ``StorageFailure`` values, never raised.
    """

    def __init__(self, engine: Optional[Engine] = None, url: Optional[str] = None):
        self.engine = engine or make_engine(url or DATABASE_URL)

    async def _run(self, operation: str, func: Callable[..., Any], *args) -> Result:
        try:
            value = await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            logging.error(f"Database {operation} error: {e}")
            return Result.fail(StorageFailure(operation, e))
        return Result.ok(value)

    async def initialize(self) -> Result[None]:
        """Create the page table if it does not exist yet"""
        result = await self._run("initialize", self._create_schema)
        if result.succeeded:
            logging.info("Database successfully prepared")
        return result

    async def fetch_all_pages(self) -> Result[List[str]]:
        """Page names, sorted"""
        return await self._run("fetch_all_pages", self._all_names)

    async def fetch_all_pages_data(self) -> Result[List[Dict[str, Any]]]:
        return await self._run("fetch_all_pages_data", self._all_rows)

    async def fetch_page(self, name: str) -> Result[PageLookup]:
        return await self._run("fetch_page", self._lookup, Page.name == name)

    async def fetch_page_by_id(self, page_id: int) -> Result[PageLookup]:
        return await self._run("fetch_page_by_id", self._lookup, Page.id == page_id)

    async def create_page(self, name: str, content: str) -> Result[None]:
        return await self._run("create_page", self._insert, name, content)

    async def save_page(self, page_id: int, content: str) -> Result[None]:
        """Update content; an unknown id updates nothing and still succeeds"""
        statement = update(Page).where(Page.id == page_id).values(content=content)
        return await self._run("save_page", self._execute, statement)

    async def delete_page(self, page_id: int) -> Result[None]:
        """Delete by id; deleting an unknown id is a no-op"""
        statement = delete(Page).where(Page.id == page_id)
        return await self._run("delete_page", self._execute, statement)

    def close(self):
        self.engine.dispose()

    # Blocking helpers, executed off the event loop

    def _create_schema(self):
        SQLModel.metadata.create_all(self.engine, tables=[Page.__table__])

    def _all_names(self) -> List[str]:
        with Session(self.engine) as session:
            names = session.exec(select(Page.name)).all()
        return sorted(names)

    def _all_rows(self) -> List[Dict[str, Any]]:
        with Session(self.engine) as session:
            pages = session.exec(select(Page).order_by(Page.id)).all()
            return [page.model_dump() for page in pages]

    def _lookup(self, condition) -> PageLookup:
        with Session(self.engine) as session:
            page = session.exec(select(Page).where(condition)).first()
            if not page:
                return PageLookup.missing()
            return PageLookup.of(page)

    def _insert(self, name: str, content: str):
        with Session(self.engine) as session:
            try:
                session.add(Page(name=name, content=content))
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def _execute(self, statement):
        with self.engine.begin() as connection:
            connection.execute(statement)
