"""SQLAlchemy implementation of the record store."""

from contextlib import contextmanager
from typing import Dict, Generator, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..query.builder import QueryBuilder, SqlQueryBuilder
from ..query.models import Collection
from ..records.record_models import (
    AttendeeRecord,
    AttendeeSummary,
    ConferenceRecord,
    ConferenceSummary,
    HealthSystemRecord,
    HealthSystemSummary,
    Record,
)
from ..retrieval.store import RecordStore, StoreError
from ..utils.logging import get_logger
from .schema import Attendee, AttendeeConference, AttendeeList, Conference, HealthSystem
from .sqlite_client import get_session_factory

logger = get_logger(__name__)

# Stable sort per collection; id breaks ties so offsets stay deterministic
ORDER_BY: Dict[Collection, Tuple] = {
    Collection.ATTENDEES: (Attendee.last_name.asc(), Attendee.id.asc()),
    Collection.HEALTH_SYSTEMS: (HealthSystem.name.asc(), HealthSystem.id.asc()),
    Collection.CONFERENCES: (Conference.start_date.desc().nullslast(), Conference.id.asc()),
}

LOAD_OPTIONS: Dict[Collection, Tuple] = {
    Collection.ATTENDEES: (
        selectinload(Attendee.health_system),
        selectinload(Attendee.conference_links).selectinload(AttendeeConference.conference),
    ),
    Collection.HEALTH_SYSTEMS: (selectinload(HealthSystem.attendees),),
    Collection.CONFERENCES: (
        selectinload(Conference.attendee_links).selectinload(AttendeeConference.attendee),
    ),
}


def _attendee_summary(row: Attendee) -> AttendeeSummary:
    return AttendeeSummary(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        title=row.title,
        company=row.company,
        email=row.email,
        phone=row.phone,
    )


def _sorted_summaries(rows: List[Attendee]) -> List[AttendeeSummary]:
    ordered = sorted(rows, key=lambda a: ((a.last_name or "").lower(), (a.first_name or "").lower(), a.id))
    return [_attendee_summary(a) for a in ordered]


def attendee_row_to_record(row: Attendee) -> AttendeeRecord:
    """Convert Attendee ORM row (relations loaded) to AttendeeRecord."""
    health_system = None
    if row.health_system is not None:
        hs = row.health_system
        health_system = HealthSystemSummary(
            id=hs.id,
            name=hs.name,
            definitive_id=hs.definitive_id,
            website=hs.website,
            address=hs.address,
            city=hs.city,
            state=hs.state,
            zip=hs.zip,
        )

    conferences = [
        ConferenceSummary(
            id=link.conference.id,
            name=link.conference.name,
            start_date=link.conference.start_date,
            end_date=link.conference.end_date,
            location=link.conference.location,
        )
        for link in row.conference_links
        if link.conference is not None
    ]
    conferences.sort(key=lambda c: (c.start_date or "", c.id))

    return AttendeeRecord(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        title=row.title,
        company=row.company,
        email=row.email,
        phone=row.phone,
        linkedin_url=row.linkedin_url,
        notes=row.notes,
        certifications=list(row.certifications or []),
        health_system_id=row.health_system_id,
        health_system=health_system,
        conferences=conferences,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def health_system_row_to_record(row: HealthSystem) -> HealthSystemRecord:
    return HealthSystemRecord(
        id=row.id,
        name=row.name,
        definitive_id=row.definitive_id,
        website=row.website,
        address=row.address,
        city=row.city,
        state=row.state,
        zip=row.zip,
        attendees=_sorted_summaries(list(row.attendees)),
        created_at=row.created_at,
    )


def conference_row_to_record(row: Conference) -> ConferenceRecord:
    attendees = [link.attendee for link in row.attendee_links if link.attendee is not None]
    return ConferenceRecord(
        id=row.id,
        name=row.name,
        start_date=row.start_date,
        end_date=row.end_date,
        location=row.location,
        attendees=_sorted_summaries(attendees),
        created_at=row.created_at,
    )


ROW_CONVERTERS = {
    Collection.ATTENDEES: attendee_row_to_record,
    Collection.HEALTH_SYSTEMS: health_system_row_to_record,
    Collection.CONFERENCES: conference_row_to_record,
}


class SqlRecordStore(RecordStore):
    """
    Record store over a SQLAlchemy sessionmaker.

    Each call opens and closes its own session, so calls issued from
    different worker threads never share a session.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlRecordStore":
        """
        Build a store for a database URL.

        Raises:
            ValueError: For in-memory SQLite URLs. Those share one connection
                across sessions, and the fetcher queries from several worker
                threads at once.
        """
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            raise ValueError("In-memory SQLite cannot back a record store; use a file database")
        return cls(get_session_factory(database_url))

    @contextmanager
    def _session(self, action: str) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.warning(f"Store query failed while trying to {action}: {exc}")
            raise StoreError(f"Failed to {action}: {exc}") from exc
        finally:
            session.close()

    def _as_sql(self, query: QueryBuilder) -> SqlQueryBuilder:
        if not isinstance(query, SqlQueryBuilder):
            raise TypeError(f"SqlRecordStore cannot execute {type(query).__name__}")
        return query

    def query(self, collection: Collection) -> SqlQueryBuilder:
        return SqlQueryBuilder(collection)

    def count(self, query: QueryBuilder) -> int:
        sql_query = self._as_sql(query)
        with self._session(f"count {sql_query.collection.value}") as session:
            return int(session.execute(sql_query.to_count()).scalar_one() or 0)

    def fetch_page(self, query: QueryBuilder, start: int, end: int) -> List[Record]:
        sql_query = self._as_sql(query)
        collection = sql_query.collection
        limit = max(end - start + 1, 0)
        stmt = (
            sql_query.to_select()
            .options(*LOAD_OPTIONS[collection])
            .order_by(*ORDER_BY[collection])
            .offset(start)
            .limit(limit)
        )
        with self._session(f"load {collection.value}") as session:
            rows = session.execute(stmt).scalars().unique().all()
            convert = ROW_CONVERTERS[collection]
            return [convert(row) for row in rows]

    def count_list_members(self, list_id: str) -> int:
        stmt = select(func.count()).select_from(AttendeeList).where(AttendeeList.list_id == list_id)
        with self._session("count list members") as session:
            return int(session.execute(stmt).scalar_one() or 0)
