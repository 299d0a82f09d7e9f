"""Repository functions for attendee, health system and conference rows."""

from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..query.builder import MODEL_FOR_COLLECTION
from ..query.models import parse_collection
from ..utils.id_generator import new_record_id
from ..utils.logging import get_logger
from ..utils.time import utc_now_z
from .schema import Attendee, AttendeeConference, AttendeeList, Base, Conference, HealthSystem

logger = get_logger(__name__)

# Columns a collaborator may never overwrite through update_entity
PROTECTED_COLUMNS = {"id", "created_at", "updated_at"}


def _model_for(collection: Any) -> Type[Base]:
    resolved = parse_collection(collection)
    if resolved is None:
        raise ValueError(f"Unknown collection: {collection!r}")
    return MODEL_FOR_COLLECTION[resolved]


def create_attendee(
    session: Session,
    *,
    first_name: str,
    last_name: str,
    title: Optional[str] = None,
    company: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    linkedin_url: Optional[str] = None,
    notes: Optional[str] = None,
    certifications: Optional[List[str]] = None,
    health_system_id: Optional[str] = None,
    attendee_id: Optional[str] = None,
) -> Attendee:
    """
    Create a new attendee row.

    Raises:
        ValueError: If health_system_id does not reference an existing health system
    """
    if health_system_id and session.get(HealthSystem, health_system_id) is None:
        raise ValueError(f"Health system not found: {health_system_id}")

    now = utc_now_z()
    row = Attendee(
        id=attendee_id or new_record_id(),
        first_name=first_name,
        last_name=last_name,
        title=title,
        company=company,
        email=email,
        phone=phone,
        linkedin_url=linkedin_url,
        notes=notes,
        certifications=list(certifications or []),
        health_system_id=health_system_id,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    logger.debug(f"Created attendee {row.id}")
    return row


def create_health_system(
    session: Session,
    *,
    name: str,
    definitive_id: Optional[str] = None,
    website: Optional[str] = None,
    address: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip: Optional[str] = None,
    health_system_id: Optional[str] = None,
) -> HealthSystem:
    row = HealthSystem(
        id=health_system_id or new_record_id(),
        name=name,
        definitive_id=definitive_id,
        website=website,
        address=address,
        city=city,
        state=state,
        zip=zip,
        created_at=utc_now_z(),
    )
    session.add(row)
    logger.debug(f"Created health system {row.id}")
    return row


def create_conference(
    session: Session,
    *,
    name: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    location: Optional[str] = None,
    conference_id: Optional[str] = None,
) -> Conference:
    row = Conference(
        id=conference_id or new_record_id(),
        name=name,
        start_date=start_date,
        end_date=end_date,
        location=location,
        created_at=utc_now_z(),
    )
    session.add(row)
    logger.debug(f"Created conference {row.id}")
    return row


def link_attendee_conference(session: Session, attendee_id: str, conference_id: str) -> AttendeeConference:
    """Associate an attendee with a conference; an existing pair is returned unchanged."""
    existing = session.execute(
        select(AttendeeConference).where(
            AttendeeConference.attendee_id == attendee_id,
            AttendeeConference.conference_id == conference_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        logger.debug(f"Attendee {attendee_id} already linked to conference {conference_id}")
        return existing

    row = AttendeeConference(
        id=new_record_id(),
        attendee_id=attendee_id,
        conference_id=conference_id,
        created_at=utc_now_z(),
    )
    session.add(row)
    session.flush()
    return row


def unlink_attendee_conference(session: Session, attendee_id: str, conference_id: str) -> bool:
    """Remove an attendee/conference association; False if the pair was not linked."""
    row = session.execute(
        select(AttendeeConference).where(
            AttendeeConference.attendee_id == attendee_id,
            AttendeeConference.conference_id == conference_id,
        )
    ).scalar_one_or_none()
    if row is None:
        return False

    session.delete(row)
    session.flush()
    logger.debug(f"Unlinked attendee {attendee_id} from conference {conference_id}")
    return True


def update_entity(session: Session, collection: Any, entity_id: str, changes: Dict[str, Any]) -> Base:
    """
    Apply column changes to one row.

    Raises:
        ValueError: For an unknown collection, unknown or protected columns,
            or a missing row
    """
    model = _model_for(collection)
    columns = model.__table__.columns
    unknown = [key for key in changes if key not in columns or key in PROTECTED_COLUMNS]
    if unknown:
        raise ValueError(f"Cannot update column(s) on {model.__tablename__}: {', '.join(sorted(unknown))}")

    row = session.get(model, entity_id)
    if row is None:
        raise ValueError(f"{model.__tablename__} row not found: {entity_id}")

    if model is Attendee and changes.get("health_system_id"):
        if session.get(HealthSystem, changes["health_system_id"]) is None:
            raise ValueError(f"Health system not found: {changes['health_system_id']}")

    for key, value in changes.items():
        setattr(row, key, value)
    if "updated_at" in columns:
        row.updated_at = utc_now_z()
    return row


def delete_entities(session: Session, collection: Any, entity_ids: Sequence[str]) -> int:
    """
    Delete rows by id, removing join rows that reference them first.

    Returns:
        Number of rows deleted from the collection's own table
    """
    model = _model_for(collection)
    ids = list(dict.fromkeys(entity_ids))
    if not ids:
        return 0

    if model is Attendee:
        session.execute(delete(AttendeeConference).where(AttendeeConference.attendee_id.in_(ids)))
        session.execute(delete(AttendeeList).where(AttendeeList.attendee_id.in_(ids)))
    elif model is Conference:
        session.execute(delete(AttendeeConference).where(AttendeeConference.conference_id.in_(ids)))
    elif model is HealthSystem:
        # Attendees outlive their employer; drop the dangling reference
        session.execute(
            update(Attendee).where(Attendee.health_system_id.in_(ids)).values(health_system_id=None)
        )

    result = session.execute(delete(model).where(model.id.in_(ids)))
    session.expire_all()
    logger.debug(f"Deleted {result.rowcount} row(s) from {model.__tablename__}")
    return result.rowcount or 0

