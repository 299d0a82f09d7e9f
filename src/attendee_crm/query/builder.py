"""Predicate builders the filter compiler composes queries with."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Type

from sqlalchemy import JSON, Float, Integer, Numeric, String, and_, cast, func, not_, or_, select
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from ..database.schema import Attendee, AttendeeList, Base, Conference, HealthSystem
from .models import Collection


class QueryBuilder(ABC):
    """
    Immutable predicate builder for one collection.

    Every ``with_*`` method returns a new builder with the extra predicate
    AND-ed onto the existing ones; the receiver is never modified.
    """

    collection: Collection

    @abstractmethod
    def has_field(self, field: str) -> bool:
        """Whether ``field`` is a filterable column of this collection."""

    @abstractmethod
    def with_equals(self, field: str, value: str) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_in(self, field: str, values: Sequence[str]) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_contains(self, field: str, value: str) -> "QueryBuilder":
        """Case-insensitive substring match."""

    @abstractmethod
    def without_contains(self, field: str, value: str) -> "QueryBuilder":
        """Case-insensitive substring exclusion."""

    @abstractmethod
    def with_starts_with(self, field: str, value: str) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_ends_with(self, field: str, value: str) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_empty(self, field: str) -> "QueryBuilder":
        """Field is null or the empty string."""

    @abstractmethod
    def with_not_empty(self, field: str) -> "QueryBuilder":
        """Field is neither null nor the empty string."""

    @abstractmethod
    def with_greater_than(self, field: str, value: str) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_less_than(self, field: str, value: str) -> "QueryBuilder":
        pass

    @abstractmethod
    def with_any_contains(self, fields: Iterable[str], value: str) -> "QueryBuilder":
        """OR-group of case-insensitive substring matches across ``fields``."""

    @abstractmethod
    def with_list_membership(self, list_id: str) -> "QueryBuilder":
        """Restrict attendees to members of a saved list (inner join)."""


MODEL_FOR_COLLECTION: Dict[Collection, Type[Base]] = {
    Collection.ATTENDEES: Attendee,
    Collection.HEALTH_SYSTEMS: HealthSystem,
    Collection.CONFERENCES: Conference,
}


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlQueryBuilder(QueryBuilder):
    """QueryBuilder over a SQLAlchemy ``select`` of the collection's ORM model."""

    def __init__(
        self,
        collection: Collection,
        conditions: Tuple[ColumnElement, ...] = (),
        list_id: Optional[str] = None,
    ):
        self.collection = collection
        self.model = MODEL_FOR_COLLECTION[collection]
        self.conditions = conditions
        self.list_id = list_id

    def _with(self, condition: ColumnElement) -> "SqlQueryBuilder":
        return SqlQueryBuilder(self.collection, self.conditions + (condition,), self.list_id)

    def _column(self, field: str):
        return self.model.__table__.columns[field]

    def _text(self, field: str):
        column = self._column(field)
        if isinstance(column.type, JSON):
            return cast(column, String)
        return column

    def _coerce(self, field: str, value: str) -> Any:
        """Convert comparison values for numeric columns; strings compare as stored."""
        column_type = self._column(field).type
        try:
            if isinstance(column_type, Integer):
                return int(value)
            if isinstance(column_type, (Float, Numeric)):
                return float(value)
        except (TypeError, ValueError):
            return value
        return value

    def has_field(self, field: str) -> bool:
        return isinstance(field, str) and field in self.model.__table__.columns

    def with_equals(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._text(field) == self._coerce(field, value))

    def with_in(self, field: str, values: Sequence[str]) -> "SqlQueryBuilder":
        return self._with(self._text(field).in_([self._coerce(field, v) for v in values]))

    def with_contains(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._text(field).ilike(f"%{_escape_like(value)}%", escape="\\"))

    def without_contains(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(not_(self._text(field).ilike(f"%{_escape_like(value)}%", escape="\\")))

    def with_starts_with(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._text(field).ilike(f"{_escape_like(value)}%", escape="\\"))

    def with_ends_with(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._text(field).ilike(f"%{_escape_like(value)}", escape="\\"))

    def with_empty(self, field: str) -> "SqlQueryBuilder":
        column = self._column(field)
        if isinstance(column.type, JSON):
            return self._with(or_(column.is_(None), cast(column, String).in_(("", "[]", "null"))))
        return self._with(or_(column.is_(None), column == ""))

    def with_not_empty(self, field: str) -> "SqlQueryBuilder":
        column = self._column(field)
        if isinstance(column.type, JSON):
            return self._with(and_(column.is_not(None), cast(column, String).not_in(("", "[]", "null"))))
        return self._with(and_(column.is_not(None), column != ""))

    def with_greater_than(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._column(field) > self._coerce(field, value))

    def with_less_than(self, field: str, value: str) -> "SqlQueryBuilder":
        return self._with(self._column(field) < self._coerce(field, value))

    def with_any_contains(self, fields: Iterable[str], value: str) -> "SqlQueryBuilder":
        pattern = f"%{_escape_like(value)}%"
        matches = [
            self._text(field).ilike(pattern, escape="\\")
            for field in fields
            if self.has_field(field)
        ]
        if not matches:
            return self
        return self._with(or_(*matches))

    def with_list_membership(self, list_id: str) -> "SqlQueryBuilder":
        if self.collection is not Collection.ATTENDEES:
            raise ValueError("List membership only applies to attendees")
        return SqlQueryBuilder(self.collection, self.conditions, list_id)

    def to_select(self) -> Select:
        """Row select with every predicate applied (no ordering or range)."""
        stmt = select(self.model)
        if self.list_id is not None:
            stmt = stmt.join(AttendeeList, AttendeeList.attendee_id == Attendee.id).where(
                AttendeeList.list_id == self.list_id
            )
        if self.conditions:
            stmt = stmt.where(*self.conditions)
        return stmt

    def to_count(self) -> Select:
        return select(func.count()).select_from(self.to_select().subquery())
