"""Paginated multi-collection fetcher.

Owns the client-side attendee, health system and conference collections and
refreshes them from the record store. One fetcher belongs to one user
session; nothing here is process-global.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from ..auth.session import AUTH_REQUIRED_MESSAGE, AuthSession
from ..config.loader import get_fetch_settings
from ..query.compiler import compile_query
from ..query.models import KIND_TO_COLLECTION, Collection, parse_collection
from ..records.record_models import Record
from ..utils.logging import get_logger
from .dedupe import merge_page
from .store import RecordStore, StoreError

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_DEBOUNCE_SECONDS = 0.3

COLLECTION_LABELS: Dict[Collection, str] = {
    Collection.ATTENDEES: "attendees",
    Collection.HEALTH_SYSTEMS: "health systems",
    Collection.CONFERENCES: "conferences",
}

RecordsUpdate = Union[Sequence[Record], Callable[[List[Record]], Iterable[Record]]]


class CollectionState(BaseModel):
    """Held records plus pagination metadata for one collection."""
    records: List[Record] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False


class CollectionPage(BaseModel):
    """Result of one collection's count + page queries."""
    collection: Collection
    records: List[Record] = Field(default_factory=list)
    total_count: int = 0


class FetcherSnapshot(BaseModel):
    """Read-only copy of the fetcher state for rendering."""
    attendees: CollectionState
    health_systems: CollectionState
    conferences: CollectionState
    current_page: int
    is_loading: bool
    error: Optional[str] = None
    has_more: bool


class DataFetcher:
    """
    Fetches filtered, paginated pages of all three collections.

    ``fetch_data`` is the only operation that talks to the store. Collaborators
    that edit or delete records elsewhere reconcile the held collections
    through the setters and ``apply_record_*`` helpers.
    """

    def __init__(
        self,
        store: RecordStore,
        session_provider: Callable[[], Optional[AuthSession]],
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize fetcher.

        Args:
            store: Backing record store
            session_provider: Returns the active session or None
            page_size: Default page size for fetch_data
            debounce_seconds: Calls issued within this window of the previous
                accepted call are dropped (UI refetch storm guard)
            clock: Monotonic clock in seconds
        """
        self.store = store
        self.session_provider = session_provider
        self.page_size = page_size
        self.debounce_seconds = debounce_seconds
        self._clock = clock

        self._states: Dict[Collection, CollectionState] = {c: CollectionState() for c in Collection}
        self.current_page = 0
        self.is_loading = False
        self.error: Optional[str] = None
        self.has_more = False

        self._last_fetch_time: Optional[float] = None
        self._generation = 0
        self._in_flight = 0

    @classmethod
    def from_config(
        cls,
        store: RecordStore,
        session_provider: Callable[[], Optional[AuthSession]],
        config: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> "DataFetcher":
        settings = get_fetch_settings(config)
        return cls(
            store,
            session_provider,
            page_size=settings["page_size"],
            debounce_seconds=settings["debounce_seconds"],
            **kwargs,
        )

    # -- read surface -----------------------------------------------------

    @property
    def attendees(self) -> List[Record]:
        return self._states[Collection.ATTENDEES].records

    @property
    def health_systems(self) -> List[Record]:
        return self._states[Collection.HEALTH_SYSTEMS].records

    @property
    def conferences(self) -> List[Record]:
        return self._states[Collection.CONFERENCES].records

    @property
    def total_count(self) -> Dict[str, int]:
        return {c.value: state.total_count for c, state in self._states.items()}

    def collection_state(self, collection: Union[Collection, str]) -> CollectionState:
        return self._states[self._require_collection(collection)]

    def snapshot(self) -> FetcherSnapshot:
        return FetcherSnapshot(
            attendees=self._states[Collection.ATTENDEES].model_copy(deep=True),
            health_systems=self._states[Collection.HEALTH_SYSTEMS].model_copy(deep=True),
            conferences=self._states[Collection.CONFERENCES].model_copy(deep=True),
            current_page=self.current_page,
            is_loading=self.is_loading,
            error=self.error,
            has_more=self.has_more,
        )

    # -- fetching ---------------------------------------------------------

    async def fetch_data(
        self,
        page: int = 0,
        page_size: Optional[int] = None,
        search_term: str = "",
        filters: Optional[Sequence[Any]] = None,
        collection: Optional[Union[Collection, str]] = None,
        list_id: Optional[str] = None,
    ) -> bool:
        """
        Refresh one collection (or all three) from the store.

        Args:
            page: Zero-based page index
            page_size: Rows per page (defaults to the fetcher's page size)
            search_term: Free-text search box contents
            filters: FilterClause objects or dicts; malformed entries are skipped
            collection: Single collection to refresh; None refreshes all three
            list_id: Scope attendees to members of this saved list

        Returns:
            True if every targeted collection was refreshed; False if the call
            was debounced, superseded by a newer call, blocked by a missing
            session, or any collection failed (see ``error``)

        Raises:
            ValueError: For an unknown collection name or invalid paging values
        """
        target = self._require_collection(collection) if collection is not None else None
        size = self.page_size if page_size is None else page_size
        if page < 0:
            raise ValueError(f"page must be >= 0, got {page}")
        if size <= 0:
            raise ValueError(f"page_size must be > 0, got {size}")

        now = self._clock()
        if self._last_fetch_time is not None and now - self._last_fetch_time < self.debounce_seconds:
            logger.debug("Fetch request debounced, too soon after previous fetch")
            return False
        self._last_fetch_time = now

        self._generation += 1
        generation = self._generation

        if self.session_provider() is None:
            self._clear_for_missing_session()
            return False

        targets = [target] if target is not None else list(Collection)
        start = page * size
        end = start + size - 1

        self._in_flight += 1
        self.is_loading = True
        self.error = None
        try:
            results = await asyncio.gather(
                *(
                    asyncio.to_thread(
                        self._fetch_collection, c, start, end, search_term, filters, list_id
                    )
                    for c in targets
                ),
                return_exceptions=True,
            )
        finally:
            self._in_flight -= 1
            self.is_loading = self._in_flight > 0

        if generation != self._generation:
            logger.info(f"Discarding results of superseded fetch #{generation} (latest #{self._generation})")
            return False

        return self._apply_results(targets, results, page, whole_set=target is None)

    def _fetch_collection(
        self,
        collection: Collection,
        start: int,
        end: int,
        search_term: str,
        filters: Optional[Sequence[Any]],
        list_id: Optional[str],
    ) -> CollectionPage:
        """Count then page one collection. Runs in a worker thread."""
        query = self.store.query(collection)

        if collection is Collection.ATTENDEES and list_id:
            # The membership count ignores search and clauses: a filtered count
            # across the join is a different query than "members of the list"
            total = self.store.count_list_members(list_id)
            data_query = compile_query(query.with_list_membership(list_id), filters, search_term, collection)
        else:
            data_query = compile_query(query, filters, search_term, collection)
            total = self.store.count(data_query)

        records = self.store.fetch_page(data_query, start, end)
        logger.debug(f"Fetched {len(records)} of {total} {COLLECTION_LABELS[collection]} (rows {start}-{end})")
        return CollectionPage(collection=collection, records=records, total_count=total)

    def _apply_results(
        self,
        targets: List[Collection],
        results: List[Any],
        page: int,
        whole_set: bool,
    ) -> bool:
        failures: List[Tuple[Collection, Exception]] = []
        for collection, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                if not isinstance(result, StoreError):
                    logger.error(f"Unexpected error fetching {COLLECTION_LABELS[collection]}", exc_info=result)
                failures.append((collection, result))
                continue

            state = self._states[collection]
            state.records = merge_page(state.records, result.records, page)
            state.total_count = result.total_count
            state.has_more = len(state.records) < state.total_count

        # The shared page only advances once every targeted collection holds it
        if failures and page > self.current_page:
            self.error = "; ".join(
                f"Error fetching {COLLECTION_LABELS[c]}: {exc}" for c, exc in failures
            )
            logger.error(self.error)
            return False

        self.current_page = page
        if whole_set:
            self.has_more = any(state.has_more for state in self._states.values())
        else:
            self.has_more = self._states[targets[0]].has_more

        if failures:
            self.error = "; ".join(
                f"Error fetching {COLLECTION_LABELS[c]}: {exc}" for c, exc in failures
            )
            logger.error(self.error)
            return False
        return True

    def _clear_for_missing_session(self) -> None:
        for collection in Collection:
            self._states[collection] = CollectionState()
        self.current_page = 0
        self.has_more = False
        self.is_loading = self._in_flight > 0
        self.error = AUTH_REQUIRED_MESSAGE
        logger.info("No active session; cleared all collections")

    async def handle_session_change(self, session: Optional[AuthSession]) -> bool:
        """Re-fetch everything for a new session, clear state when signed out."""
        if session is None or not session.is_active():
            # Invalidate anything still in flight for the previous session
            self._generation += 1
            self._clear_for_missing_session()
            return False
        return await self.fetch_data()

    # -- reconciliation setters -------------------------------------------

    def set_attendees(self, value: RecordsUpdate) -> None:
        self._set_records(Collection.ATTENDEES, value)

    def set_health_systems(self, value: RecordsUpdate) -> None:
        self._set_records(Collection.HEALTH_SYSTEMS, value)

    def set_conferences(self, value: RecordsUpdate) -> None:
        self._set_records(Collection.CONFERENCES, value)

    def set_current_page(self, page: int) -> None:
        self.current_page = page

    def _set_records(self, collection: Collection, value: RecordsUpdate) -> None:
        state = self._states[collection]
        if callable(value):
            value = value(list(state.records))
        state.records = list(value)

    def apply_record_update(self, record: Record) -> None:
        """Replace the held record with the same id, or prepend it if new."""
        state = self._states[KIND_TO_COLLECTION[record.kind]]
        for index, held in enumerate(state.records):
            if held.id == record.id:
                state.records[index] = record
                return
        state.records.insert(0, record)
        state.total_count += 1

    def apply_record_delete(self, collection: Union[Collection, str], ids: Iterable[str]) -> int:
        """Drop held records by id; returns how many were removed."""
        state = self._states[self._require_collection(collection)]
        doomed = set(ids)
        kept = [r for r in state.records if r.id not in doomed]
        removed = len(state.records) - len(kept)
        state.records = kept
        state.total_count = max(state.total_count - removed, 0)
        return removed

    @staticmethod
    def _require_collection(collection: Union[Collection, str]) -> Collection:
        resolved = parse_collection(collection)
        if resolved is None:
            raise ValueError(f"Unknown collection: {collection!r}")
        return resolved
