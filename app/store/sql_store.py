"""SQLAlchemy implementation of the DataStore.

Each call is its own session and its own commit, so a sequence of calls behaves
like the remote data API: earlier writes stay committed when a later one fails.
"""

import logging
from typing import Any, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..database import SessionLocal
from ..models import (
    Booking,
    Couple,
    Event,
    Invoice,
    InvoiceLineItem,
    Payment,
    ServicePackage,
    StoreProduct,
    Vendor,
)
from .interfaces import DataStore, DataStoreError, Row

logger = logging.getLogger(__name__)

TABLES = {
    model.__tablename__: model
    for model in (
        Couple,
        Vendor,
        ServicePackage,
        StoreProduct,
        Event,
        Booking,
        Invoice,
        InvoiceLineItem,
        Payment,
    )
}


def _row_to_dict(obj) -> Row:
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


class SqlStore(DataStore):
    """Relational row store using the SQLAlchemy models in app.models."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def _model(self, table: str, operation: str):
        model = TABLES.get(table)
        if model is None:
            raise DataStoreError(f"Unknown table '{table}'", table, operation)
        return model

    def _get_or_fail(self, db: Session, model, table: str, row_id: str, operation: str):
        obj = db.get(model, row_id)
        if obj is None:
            raise DataStoreError(f"No row with id {row_id}", table, operation, status_code=404)
        return obj

    async def insert(self, table: str, row: Row) -> Row:
        model = self._model(table, "insert")
        try:
            with self._session_factory() as db:
                obj = model(**row)
                db.add(obj)
                db.commit()
                db.refresh(obj)
                return _row_to_dict(obj)
        except (SQLAlchemyError, TypeError) as e:
            logger.error(f"❌ Insert into {table} failed: {e}")
            raise DataStoreError(str(e), table, "insert") from e

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        model = self._model(table, "get")
        try:
            with self._session_factory() as db:
                obj = db.get(model, row_id)
                return _row_to_dict(obj) if obj is not None else None
        except SQLAlchemyError as e:
            raise DataStoreError(str(e), table, "get") from e

    async def select(self, table: str, order_by: Optional[str] = None, **filters: Any) -> list[Row]:
        model = self._model(table, "select")
        try:
            with self._session_factory() as db:
                query = db.query(model)
                for column, value in filters.items():
                    attr = getattr(model, column)
                    if isinstance(value, (list, tuple, set)):
                        query = query.filter(attr.in_(list(value)))
                    else:
                        query = query.filter(attr == value)
                if order_by:
                    column = getattr(model, order_by.lstrip("-"))
                    query = query.order_by(column.desc() if order_by.startswith("-") else column)
                return [_row_to_dict(obj) for obj in query.all()]
        except (SQLAlchemyError, AttributeError) as e:
            raise DataStoreError(str(e), table, "select") from e

    async def update(self, table: str, row_id: str, values: Row) -> Row:
        model = self._model(table, "update")
        try:
            with self._session_factory() as db:
                obj = self._get_or_fail(db, model, table, row_id, "update")
                for column, value in values.items():
                    setattr(obj, column, value)
                db.commit()
                db.refresh(obj)
                return _row_to_dict(obj)
        except SQLAlchemyError as e:
            logger.error(f"❌ Update of {table}/{row_id} failed: {e}")
            raise DataStoreError(str(e), table, "update") from e

    async def delete(self, table: str, row_id: str) -> None:
        model = self._model(table, "delete")
        try:
            with self._session_factory() as db:
                obj = self._get_or_fail(db, model, table, row_id, "delete")
                db.delete(obj)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"❌ Delete of {table}/{row_id} failed: {e}")
            raise DataStoreError(str(e), table, "delete") from e
