"""Repository functions for saved attendee lists and their memberships."""

from typing import List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..records.record_models import ListSummary
from ..utils.id_generator import new_record_id
from ..utils.logging import get_logger
from ..utils.time import utc_now_z
from .schema import Attendee, AttendeeList, CrmList

logger = get_logger(__name__)

ALREADY_IN_LIST = "Already in list"


class MembershipResult(BaseModel):
    """Outcome of adding one attendee to a list."""
    attendee_id: str
    success: bool
    error: Optional[str] = None


def _require_list(session: Session, list_id: str) -> CrmList:
    crm_list = session.get(CrmList, list_id)
    if crm_list is None:
        raise ValueError(f"List not found: {list_id}")
    return crm_list


def create_list(session: Session, name: str) -> CrmList:
    """
    Create a new, empty list.

    Raises:
        ValueError: If the name is blank
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("List name must not be empty")
    row = CrmList(id=new_record_id(), name=name, created_at=utc_now_z())
    session.add(row)
    session.flush()
    logger.debug(f"Created list {row.id} ({name})")
    return row


def rename_list(session: Session, list_id: str, name: str) -> CrmList:
    name = (name or "").strip()
    if not name:
        raise ValueError("List name must not be empty")
    crm_list = _require_list(session, list_id)
    crm_list.name = name
    return crm_list


def list_lists_with_counts(session: Session) -> List[ListSummary]:
    """All lists ordered by name, each with its member count."""
    stmt = (
        select(CrmList.id, CrmList.name, func.count(AttendeeList.id))
        .outerjoin(AttendeeList, AttendeeList.list_id == CrmList.id)
        .group_by(CrmList.id, CrmList.name)
        .order_by(CrmList.name.asc(), CrmList.id.asc())
    )
    return [
        ListSummary(id=list_id, name=name, count=count)
        for list_id, name, count in session.execute(stmt).all()
    ]


def get_list_summary(session: Session, list_id: str) -> Optional[ListSummary]:
    for summary in list_lists_with_counts(session):
        if summary.id == list_id:
            return summary
    return None


def add_attendees_to_list(
    session: Session,
    list_id: str,
    attendee_ids: Sequence[str],
) -> List[MembershipResult]:
    """
    Add attendees to a list.

    Pairs that already exist are reported as successes ("Already in list")
    without inserting anything, so repeating a bulk add is harmless.

    Args:
        session: SQLAlchemy session
        list_id: Target list
        attendee_ids: Attendees to add (duplicates in the input are collapsed)

    Returns:
        One MembershipResult per distinct attendee id, in input order

    Raises:
        ValueError: If the list does not exist or any attendee id is blank
    """
    _require_list(session, list_id)

    invalid = [a for a in attendee_ids if not a or not str(a).strip()]
    if invalid:
        raise ValueError(f"{len(invalid)} attendee(s) have invalid IDs and cannot be added to the list")

    ordered_ids = list(dict.fromkeys(attendee_ids))
    if not ordered_ids:
        return []

    existing_ids = set(
        session.execute(
            select(AttendeeList.attendee_id).where(
                AttendeeList.list_id == list_id,
                AttendeeList.attendee_id.in_(ordered_ids),
            )
        ).scalars()
    )
    known_ids = set(
        session.execute(select(Attendee.id).where(Attendee.id.in_(ordered_ids))).scalars()
    )

    now = utc_now_z()
    results: List[MembershipResult] = []
    for attendee_id in ordered_ids:
        if attendee_id in existing_ids:
            results.append(MembershipResult(attendee_id=attendee_id, success=True, error=ALREADY_IN_LIST))
            continue
        if attendee_id not in known_ids:
            results.append(MembershipResult(attendee_id=attendee_id, success=False, error="Attendee not found"))
            continue
        session.add(
            AttendeeList(id=new_record_id(), attendee_id=attendee_id, list_id=list_id, created_at=now)
        )
        results.append(MembershipResult(attendee_id=attendee_id, success=True))

    session.flush()
    added = sum(1 for r in results if r.success and r.error is None)
    logger.debug(f"Added {added} attendee(s) to list {list_id}")
    return results


def remove_attendees_from_list(session: Session, list_id: str, attendee_ids: Sequence[str]) -> int:
    """Remove memberships; returns the number of rows removed."""
    if not attendee_ids:
        return 0
    rows = session.execute(
        select(AttendeeList).where(
            AttendeeList.list_id == list_id,
            AttendeeList.attendee_id.in_(list(attendee_ids)),
        )
    ).scalars().all()
    for row in rows:
        session.delete(row)
    session.flush()
    return len(rows)


def delete_list(session: Session, list_id: str) -> bool:
    """Delete a list and its memberships; False if it did not exist."""
    crm_list = session.get(CrmList, list_id)
    if crm_list is None:
        return False

    # Memberships first, then the list itself
    memberships = session.execute(
        select(AttendeeList).where(AttendeeList.list_id == list_id)
    ).scalars().all()
    for row in memberships:
        session.delete(row)
    session.flush()

    session.delete(crm_list)
    session.flush()
    logger.debug(f"Deleted list {list_id} with {len(memberships)} membership(s)")
    return True
