from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from sqlalchemy import Select, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.core.database import Base
from portal.core.errors import UpstreamFailure


logger = logging.getLogger("portal.storage")

Document = dict[str, Any]


class DocumentStore(Protocol):
    """Keyed collections of documents with filtered, ordered, paginated reads."""

    def get(self, collection: str, document_id: str) -> Document | None:
        ...

    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any],
        order_by: Sequence[str],
        descending: bool = True,
        limit: int,
        offset: int = 0,
    ) -> list[Document]:
        ...

    def add(self, collection: str, data: Mapping[str, Any], *, document_id: str | None = None) -> Document:
        ...

    def update(self, collection: str, document_id: str, changes: Mapping[str, Any]) -> Document | None:
        ...

    def delete(self, collection: str, document_id: str) -> None:
        ...


class SqlAlchemyDocumentStore:
    """Document store backed by one ORM table per collection.

    Every write commits immediately, so concurrent writers to the same document
    resolve as last-write-wins.
    """

    adapter_name = "document_store"

    def __init__(self, session: Session, models: Mapping[str, type[Base]]) -> None:
        self._session = session
        self._models = dict(models)

    def get(self, collection: str, document_id: str) -> Document | None:
        model = self._model(collection)
        try:
            row = self._session.get(model, document_id)
        except SQLAlchemyError as exc:
            raise self._failure("get", collection, exc) from exc
        return _to_document(row) if row is not None else None

    def query(
        self,
        collection: str,
        *,
        where: Mapping[str, Any],
        order_by: Sequence[str],
        descending: bool = True,
        limit: int,
        offset: int = 0,
    ) -> list[Document]:
        model = self._model(collection)
        stmt: Select[Any] = select(model)
        for field_name, value in where.items():
            stmt = stmt.where(self._column(model, field_name) == value)
        for field_name in order_by:
            column = self._column(model, field_name)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        stmt = stmt.offset(offset).limit(limit)
        try:
            rows = self._session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise self._failure("query", collection, exc) from exc
        return [_to_document(row) for row in rows]

    def add(self, collection: str, data: Mapping[str, Any], *, document_id: str | None = None) -> Document:
        model = self._model(collection)
        values = _known_columns(model, data)
        values["id"] = document_id or str(uuid.uuid4())
        row = model(**values)
        try:
            self._session.add(row)
            self._session.commit()
            self._session.refresh(row)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise self._failure("add", collection, exc) from exc
        return _to_document(row)

    def update(self, collection: str, document_id: str, changes: Mapping[str, Any]) -> Document | None:
        model = self._model(collection)
        try:
            row = self._session.get(model, document_id)
            if row is None:
                return None
            for key, value in _known_columns(model, changes).items():
                if key == "id":
                    continue
                setattr(row, key, value)
            self._session.commit()
            self._session.refresh(row)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise self._failure("update", collection, exc) from exc
        return _to_document(row)

    def delete(self, collection: str, document_id: str) -> None:
        model = self._model(collection)
        try:
            row = self._session.get(model, document_id)
            if row is None:
                return
            self._session.delete(row)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise self._failure("delete", collection, exc) from exc

    def _model(self, collection: str) -> type[Base]:
        try:
            return self._models[collection]
        except KeyError:
            raise ValueError(f"unknown collection: {collection}") from None

    @staticmethod
    def _column(model: type[Base], field_name: str) -> Any:
        if field_name not in _column_keys(model):
            raise ValueError(f"unknown field '{field_name}' for {model.__tablename__}")
        return getattr(model, field_name)

    def _failure(self, operation: str, collection: str, exc: Exception) -> UpstreamFailure:
        logger.error(
            "document_store.failed",
            exc_info=exc,
            extra={"resource": collection, "action": operation, "error": str(exc)},
        )
        return UpstreamFailure(self.adapter_name, f"Document store {operation} failed")


def _column_keys(model: type[Base]) -> set[str]:
    return {attr.key for attr in inspect(model).column_attrs}


def _known_columns(model: type[Base], data: Mapping[str, Any]) -> dict[str, Any]:
    keys = _column_keys(model)
    return {key: value for key, value in data.items() if key in keys}


def _to_document(row: Base) -> Document:
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}
