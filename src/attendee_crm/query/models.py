"""Filter clause and collection definitions shared by the compiler and fetcher."""

from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field

from ..utils.id_generator import new_clause_id


class Collection(str, Enum):
    ATTENDEES = "attendees"
    HEALTH_SYSTEMS = "health_systems"
    CONFERENCES = "conferences"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class FilterClause(BaseModel):
    """One structured filter condition composed in the UI (never persisted)."""
    id: str = Field(default_factory=new_clause_id)
    property: str
    operator: FilterOperator
    value: str = ""


# Fields OR-ed together for the free-text search box, per collection
SEARCH_FIELDS: Dict[Collection, Tuple[str, ...]] = {
    Collection.ATTENDEES: ("first_name", "last_name", "email", "title", "company"),
    Collection.HEALTH_SYSTEMS: ("name", "city", "state"),
    Collection.CONFERENCES: ("name", "location"),
}

# Record kind discriminant -> owning collection
KIND_TO_COLLECTION: Dict[str, Collection] = {
    "attendee": Collection.ATTENDEES,
    "health_system": Collection.HEALTH_SYSTEMS,
    "conference": Collection.CONFERENCES,
}

_COLLECTION_ALIASES: Dict[str, Collection] = {
    "attendees": Collection.ATTENDEES,
    "health_systems": Collection.HEALTH_SYSTEMS,
    "health-systems": Collection.HEALTH_SYSTEMS,
    "healthsystems": Collection.HEALTH_SYSTEMS,
    "conferences": Collection.CONFERENCES,
}


def parse_collection(name: object) -> Optional[Collection]:
    """Resolve a collection from its enum, table name or UI tab name; None if unknown."""
    if isinstance(name, Collection):
        return name
    if not isinstance(name, str):
        return None
    return _COLLECTION_ALIASES.get(name.strip().lower())
