"""Backing-store interface consumed by the fetcher."""

from abc import ABC, abstractmethod
from typing import List

from ..query.builder import QueryBuilder
from ..query.models import Collection
from ..records.record_models import Record


class StoreError(Exception):
    """A count or page query was rejected by the backing store."""


class RecordStore(ABC):
    """Executes compiled queries for the three record collections."""

    @abstractmethod
    def query(self, collection: Collection) -> QueryBuilder:
        """Fresh, unfiltered builder for ``collection``."""

    @abstractmethod
    def count(self, query: QueryBuilder) -> int:
        """Exact number of rows matching ``query`` (no range applied)."""

    @abstractmethod
    def fetch_page(self, query: QueryBuilder, start: int, end: int) -> List[Record]:
        """
        Rows ``start..end`` (zero-indexed, inclusive) of ``query`` in the
        collection's stable sort order, with related rows embedded.
        """

    @abstractmethod
    def count_list_members(self, list_id: str) -> int:
        """Number of membership rows for a saved list."""
