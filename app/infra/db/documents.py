import copy
import secrets
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.db.models import Document
from app.services.errors import StoreError

logger = structlog.get_logger(__name__)

Filters = dict[str, str | int | bool | None]


def new_document_id() -> str:
    return secrets.token_hex(12)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands timestamps back without their zone; they are stored as UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


class DocumentCollection:
    """Collection-scoped access to JSON documents.

    Writes always replace the whole document and commit immediately; there
    is no partial update and no version check.
    """

    def __init__(self, session: AsyncSession, name: str) -> None:
        self.session = session
        self.name = name

    async def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        try:
            row = await self.session.get(Document, (self.name, document_id))
        except SQLAlchemyError as exc:
            raise self._store_error("get", exc, document_id=document_id) from exc
        if row is None:
            return None
        return self._to_document(row)

    async def find(
        self,
        filters: Filters | None = None,
        *,
        text: str | None = None,
        text_fields: tuple[str, ...] = (),
        sort_field: str | None = None,
        sort_dir: int = 1,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        stmt: Select[tuple[Document]] = select(Document).where(
            Document.collection == self.name
        )
        if filters:
            stmt = stmt.where(and_(*self._filter_clauses(filters)))
        if text and text_fields:
            pattern = f"%{text}%"
            stmt = stmt.where(
                or_(
                    *(
                        Document.data[field].as_string().ilike(pattern)
                        for field in text_fields
                    )
                )
            )
        if sort_field:
            column = func.lower(Document.data[sort_field].as_string())
            stmt = stmt.order_by(column.desc() if sort_dir < 0 else column.asc())
        else:
            stmt = stmt.order_by(Document.created_at.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit:
            stmt = stmt.limit(limit)

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise self._store_error("find", exc) from exc
        return [self._to_document(row) for row in result.scalars().all()]

    async def find_one(self, filters: Filters) -> dict[str, Any] | None:
        documents = await self.find(filters, limit=1)
        return documents[0] if documents else None

    async def insert_one(self, document: dict[str, Any]) -> dict[str, Any]:
        document_id = str(document.get("_id") or new_document_id())
        data = copy.deepcopy(document)
        data["_id"] = document_id
        row = Document(collection=self.name, id=document_id, data=data)
        try:
            self.session.add(row)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise self._store_error("insert", exc, document_id=document_id) from exc
        return self._to_document(row)

    async def replace_one(self, document: dict[str, Any]) -> dict[str, Any]:
        document_id = str(document["_id"])
        try:
            row = await self.session.get(Document, (self.name, document_id))
            if row is None:
                raise StoreError(
                    f"Document '{document_id}' missing from '{self.name}'"
                )
            row.data = copy.deepcopy(document)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise self._store_error("replace", exc, document_id=document_id) from exc
        return self._to_document(row)

    async def delete_one(self, document_id: str) -> bool:
        try:
            row = await self.session.get(Document, (self.name, document_id))
            if row is None:
                return False
            await self.session.delete(row)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise self._store_error("delete", exc, document_id=document_id) from exc
        return True

    @staticmethod
    def _filter_clauses(filters: Filters) -> list[Any]:
        clauses = []
        for field, value in filters.items():
            if field == "_id":
                clauses.append(Document.id == str(value))
            elif isinstance(value, bool):
                clauses.append(Document.data[field].as_boolean() == value)
            elif isinstance(value, int):
                clauses.append(Document.data[field].as_integer() == value)
            elif value is None:
                clauses.append(Document.data[field].as_string().is_(None))
            else:
                clauses.append(Document.data[field].as_string() == value)
        return clauses

    @staticmethod
    def _to_document(row: Document) -> dict[str, Any]:
        document = copy.deepcopy(row.data)
        document["_id"] = row.id
        if row.created_at is not None:
            document.setdefault("createdAt", _as_utc(row.created_at).isoformat())
        return document

    def _store_error(
        self, operation: str, exc: SQLAlchemyError, **context: Any
    ) -> StoreError:
        logger.error(
            "store.operation_failed",
            collection=self.name,
            operation=operation,
            error=str(exc),
            **context,
        )
        return StoreError(f"Cannot {operation} document in '{self.name}'")
