from __future__ import annotations

from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from obseques.core.extensions import db

PROTECTED_FIELDS = {"id", "user_id"}


class PersistenceError(RuntimeError):
    """A backend write or read failed; the message is the backend's error text."""


class OwnedTable:
    """Row collection of one model, scoped to the rows of a single owner.

    Every write commits on its own; there is no transaction spanning
    several calls.
    """

    def __init__(self, model, owner_id: int):
        self.model = model
        self.owner_id = owner_id

    def _query(self):
        return self.model.query.filter_by(user_id=self.owner_id)

    def _columns(self) -> set[str]:
        return {column.key for column in self.model.__table__.columns}

    def _clean(self, values: dict[str, Any]) -> dict[str, Any]:
        columns = self._columns()
        return {k: v for k, v in values.items() if k in columns and k not in PROTECTED_FIELDS}

    def _fail(self, action: str, exc: Exception) -> PersistenceError:
        db.session.rollback()
        current_app.logger.warning(
            "%s %s failed for owner %s: %s", action, self.model.__tablename__, self.owner_id, exc
        )
        return PersistenceError(str(getattr(exc, "orig", None) or exc))

    def select_all(self, *order_by) -> list:
        query = self._query()
        if order_by:
            query = query.order_by(*order_by)
        else:
            query = query.order_by(self.model.id.asc())
        try:
            return query.all()
        except SQLAlchemyError as exc:
            raise self._fail("select", exc) from exc

    def select_one(self, **filters):
        try:
            return self._query().filter_by(**filters).first()
        except SQLAlchemyError as exc:
            raise self._fail("select", exc) from exc

    def insert(self, values: dict[str, Any]):
        return self.insert_many([values])[0]

    def insert_many(self, rows: Iterable[dict[str, Any]]) -> list:
        created = [self.model(user_id=self.owner_id, **self._clean(values)) for values in rows]
        try:
            db.session.add_all(created)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail("insert", exc) from exc
        return created

    def update(self, row_id: int, values: dict[str, Any]):
        row = self.select_one(id=row_id)
        if row is None:
            raise PersistenceError(f"Enregistrement {row_id} introuvable")
        try:
            for key, value in self._clean(values).items():
                setattr(row, key, value)
            db.session.commit()
        except ValueError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            raise self._fail("update", exc) from exc
        return row

    def delete(self, row_id: int) -> None:
        try:
            deleted = self._query().filter_by(id=row_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete", exc) from exc
        if not deleted:
            raise PersistenceError(f"Enregistrement {row_id} introuvable")

    def upsert(self, match: tuple[str, ...], values: dict[str, Any]):
        filters = {field: values.get(field) for field in match}
        existing = self.select_one(**filters)
        if existing is None:
            return self.insert(values)
        return self.update(existing.id, values)
