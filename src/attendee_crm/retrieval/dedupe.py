"""Merge and deduplication of paged records."""

from typing import Iterable, List, Sequence, TypeVar

T = TypeVar("T")


def unique_by_id(items: Iterable[T]) -> List[T]:
    """
    Drop items whose ``id`` was already seen, keeping the first occurrence.

    Order of first occurrences is preserved.
    """
    seen: set[str] = set()
    unique: List[T] = []
    for item in items:
        item_id = getattr(item, "id")
        if item_id in seen:
            continue
        seen.add(item_id)
        unique.append(item)
    return unique


def merge_page(held: Sequence[T], page_items: Sequence[T], page: int) -> List[T]:
    """
    Merge a freshly fetched page into the held records.

    Page 0 replaces what is held. Later pages are appended and deduplicated,
    so a record shifted across a page boundary by a concurrent insert is not
    listed twice.
    """
    if page == 0:
        return list(page_items)
    return unique_by_id([*held, *page_items])
