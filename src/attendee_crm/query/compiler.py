"""Filter/search compiler: UI filter state -> composed store query.

The compiler is pure: it only chains predicates onto the builder it is handed
and never executes anything. Malformed clauses are routine while a user is
still editing a filter, so they are skipped instead of reported.
"""

from typing import Any, Iterable, List, Mapping, Optional

from .builder import QueryBuilder
from .models import SEARCH_FIELDS, FilterClause, FilterOperator, parse_collection


def split_set_value(value: str) -> List[str]:
    """Split a comma-separated ``equals`` value into trimmed, non-empty tokens."""
    return [token.strip() for token in value.split(",") if token.strip()]


def _coerce_clause(raw: Any) -> Optional[FilterClause]:
    """Accept FilterClause objects or plain mappings; None for anything unusable."""
    if isinstance(raw, FilterClause):
        return raw
    if not isinstance(raw, Mapping):
        return None

    prop = raw.get("property")
    operator = raw.get("operator")
    if not prop or not isinstance(prop, str) or not operator:
        return None
    try:
        operator = FilterOperator(operator)
    except ValueError:
        return None

    value = raw.get("value")
    if value is None:
        value = ""
    elif not isinstance(value, str):
        value = str(value)

    clause_id = raw.get("id")
    if clause_id:
        return FilterClause(id=str(clause_id), property=prop, operator=operator, value=value)
    return FilterClause(property=prop, operator=operator, value=value)


def apply_clause(query: QueryBuilder, clause: FilterClause) -> QueryBuilder:
    """Apply one clause; clauses that cannot apply leave the query unchanged."""
    field = clause.property
    if not field or not query.has_field(field):
        return query

    value = clause.value or ""
    operator = clause.operator

    if operator is FilterOperator.EQUALS:
        if "," in value:
            tokens = split_set_value(value)
            return query.with_in(field, tokens) if tokens else query
        return query.with_equals(field, value) if value else query
    if operator is FilterOperator.IS_EMPTY:
        return query.with_empty(field)
    if operator is FilterOperator.IS_NOT_EMPTY:
        return query.with_not_empty(field)

    # Remaining operators all need a value
    if not value:
        return query
    if operator is FilterOperator.CONTAINS:
        return query.with_contains(field, value)
    if operator is FilterOperator.NOT_CONTAINS:
        return query.without_contains(field, value)
    if operator is FilterOperator.STARTS_WITH:
        return query.with_starts_with(field, value)
    if operator is FilterOperator.ENDS_WITH:
        return query.with_ends_with(field, value)
    if operator is FilterOperator.GREATER_THAN:
        return query.with_greater_than(field, value)
    if operator is FilterOperator.LESS_THAN:
        return query.with_less_than(field, value)
    return query


def apply_search(query: QueryBuilder, search_term: Any, collection: Any) -> QueryBuilder:
    """OR the collection's search fields together for a non-blank search term."""
    if not isinstance(search_term, str) or not search_term.strip():
        return query
    resolved = parse_collection(collection)
    if resolved is None:
        return query
    return query.with_any_contains(SEARCH_FIELDS[resolved], search_term.strip())


def compile_query(
    query: QueryBuilder,
    clauses: Optional[Iterable[Any]],
    search_term: Any,
    collection: Any,
) -> QueryBuilder:
    """
    Compose the search OR-group and every usable clause onto ``query``.

    Args:
        query: Builder for the target collection
        clauses: FilterClause objects or dicts; None, non-lists and bad
            entries are tolerated
        search_term: Free-text search box contents
        collection: Collection enum or name selecting the search field set

    Returns:
        New builder with the search group and clauses AND-ed together
    """
    query = apply_search(query, search_term, collection)

    if not isinstance(clauses, (list, tuple)):
        return query

    for raw in clauses:
        clause = _coerce_clause(raw)
        if clause is None:
            continue
        query = apply_clause(query, clause)
    return query
