"""In-memory stand-ins for the query builder and record store."""

import threading
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from attendee_crm.query.builder import QueryBuilder
from attendee_crm.query.models import Collection
from attendee_crm.records.record_models import (
    AttendeeRecord,
    ConferenceRecord,
    HealthSystemRecord,
    Record,
)
from attendee_crm.retrieval.store import RecordStore, StoreError

FIELDS: Dict[Collection, Set[str]] = {
    Collection.ATTENDEES: set(AttendeeRecord.model_fields) - {"kind", "health_system", "conferences"},
    Collection.HEALTH_SYSTEMS: set(HealthSystemRecord.model_fields) - {"kind", "attendees"},
    Collection.CONFERENCES: set(ConferenceRecord.model_fields) - {"kind", "attendees"},
}

Predicate = Callable[[Record], bool]


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


class MemoryQueryBuilder(QueryBuilder):
    """Evaluates predicates against record objects; ``ops`` records every call."""

    def __init__(
        self,
        collection: Collection,
        predicates: Tuple[Predicate, ...] = (),
        ops: Tuple[tuple, ...] = (),
        members_of: Optional[Callable[[str], Set[str]]] = None,
        list_id: Optional[str] = None,
    ):
        self.collection = collection
        self.predicates = predicates
        self.ops = ops
        self.members_of = members_of or (lambda _list_id: set())
        self.list_id = list_id

    def _with(self, op: tuple, predicate: Predicate) -> "MemoryQueryBuilder":
        return MemoryQueryBuilder(
            self.collection,
            self.predicates + (predicate,),
            self.ops + (op,),
            self.members_of,
            self.list_id,
        )

    def matches(self, record: Record) -> bool:
        return all(predicate(record) for predicate in self.predicates)

    def has_field(self, field: str) -> bool:
        return field in FIELDS[self.collection]

    def with_equals(self, field, value):
        return self._with(("with_equals", field, value), lambda r: _text(getattr(r, field)) == value)

    def with_in(self, field, values):
        allowed = list(values)
        return self._with(("with_in", field, allowed), lambda r: _text(getattr(r, field)) in allowed)

    def with_contains(self, field, value):
        needle = value.lower()
        return self._with(
            ("with_contains", field, value),
            lambda r: needle in (_text(getattr(r, field)) or "").lower() if getattr(r, field) is not None else False,
        )

    def without_contains(self, field, value):
        needle = value.lower()
        return self._with(
            ("without_contains", field, value),
            lambda r: getattr(r, field) is not None and needle not in (_text(getattr(r, field)) or "").lower(),
        )

    def with_starts_with(self, field, value):
        prefix = value.lower()
        return self._with(
            ("with_starts_with", field, value),
            lambda r: (_text(getattr(r, field)) or "").lower().startswith(prefix) and getattr(r, field) is not None,
        )

    def with_ends_with(self, field, value):
        suffix = value.lower()
        return self._with(
            ("with_ends_with", field, value),
            lambda r: (_text(getattr(r, field)) or "").lower().endswith(suffix) and getattr(r, field) is not None,
        )

    def with_empty(self, field):
        return self._with(("with_empty", field), lambda r: getattr(r, field) in (None, ""))

    def with_not_empty(self, field):
        return self._with(("with_not_empty", field), lambda r: getattr(r, field) not in (None, ""))

    def with_greater_than(self, field, value):
        return self._with(
            ("with_greater_than", field, value),
            lambda r: getattr(r, field) is not None and _text(getattr(r, field)) > value,
        )

    def with_less_than(self, field, value):
        return self._with(
            ("with_less_than", field, value),
            lambda r: getattr(r, field) is not None and _text(getattr(r, field)) < value,
        )

    def with_any_contains(self, fields, value):
        names = [f for f in fields if self.has_field(f)]
        needle = value.lower()
        return self._with(
            ("with_any_contains", tuple(names), value),
            lambda r: any(needle in (_text(getattr(r, f)) or "").lower() for f in names),
        )

    def with_list_membership(self, list_id):
        members = self.members_of(list_id)
        built = self._with(("with_list_membership", list_id), lambda r: r.id in members)
        built.list_id = list_id
        return built


SORT_KEYS = {
    Collection.ATTENDEES: (lambda r: (r.last_name, r.id), False),
    Collection.HEALTH_SYSTEMS: (lambda r: (r.name, r.id), False),
    Collection.CONFERENCES: (lambda r: (r.start_date or "", r.id), True),
}


class FakeStore(RecordStore):
    """
    Thread-safe in-memory record store.

    ``calls`` logs every store call as ``(method, collection_or_list_id)``.
    ``failures`` maps a collection to an exception raised on its next count.
    ``gates`` holds threading.Events; each fetch_page pops one and waits on it.
    """

    def __init__(
        self,
        records: Optional[Dict[Collection, Iterable[Record]]] = None,
        memberships: Optional[Dict[str, Set[str]]] = None,
    ):
        records = records or {}
        self.records: Dict[Collection, List[Record]] = {c: list(records.get(c, [])) for c in Collection}
        self.memberships: Dict[str, Set[str]] = memberships or {}
        self.calls: List[tuple] = []
        self.failures: Dict[Collection, Exception] = {}
        self.gates: List[threading.Event] = []
        self.last_queries: Dict[Collection, MemoryQueryBuilder] = {}
        self._lock = threading.Lock()

    def _log(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_for(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def query(self, collection: Collection) -> MemoryQueryBuilder:
        self._log("query", collection)
        return MemoryQueryBuilder(collection, members_of=lambda list_id: self.memberships.get(list_id, set()))

    def count(self, query: MemoryQueryBuilder) -> int:
        self._log("count", query.collection)
        with self._lock:
            failure = self.failures.pop(query.collection, None)
        if failure is not None:
            raise failure
        return sum(1 for r in self.records[query.collection] if query.matches(r))

    def fetch_page(self, query: MemoryQueryBuilder, start: int, end: int) -> List[Record]:
        self._log("fetch_page", query.collection)
        with self._lock:
            gate = self.gates.pop(0) if self.gates else None
            self.last_queries[query.collection] = query
        if gate is not None:
            gate.wait(timeout=5)
        key, reverse = SORT_KEYS[query.collection]
        rows = sorted((r for r in self.records[query.collection] if query.matches(r)), key=key, reverse=reverse)
        return rows[start:end + 1]

    def count_list_members(self, list_id: str) -> int:
        self._log("count_list_members", list_id)
        return len(self.memberships.get(list_id, set()))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_attendees(count: int, prefix: str = "att") -> List[AttendeeRecord]:
    return [
        AttendeeRecord(
            id=f"{prefix}-{i:03d}",
            first_name=f"First{i:03d}",
            last_name=f"Last{i:03d}",
            email=f"person{i:03d}@example.org",
        )
        for i in range(count)
    ]


def ids(records: Sequence[Record]) -> List[str]:
    return [r.id for r in records]


def failing(message: str = "connection reset by peer") -> StoreError:
    return StoreError(message)
