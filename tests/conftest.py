"""Pytest configuration and fixtures."""

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from attendee_crm.auth.session import AuthSession
from attendee_crm.database.entity_repo import (
    create_attendee,
    create_conference,
    create_health_system,
    link_attendee_conference,
)
from attendee_crm.database.list_repo import add_attendees_to_list, create_list
from attendee_crm.database.schema import Base
from attendee_crm.database.sqlite_client import get_session_factory


@pytest.fixture
def session():
    """Create a temporary in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def db_url(tmp_path):
    """File-backed SQLite URL; fetches run in worker threads, so no :memory: here."""
    return f"sqlite:///{tmp_path / 'crm.sqlite'}"


@pytest.fixture
def active_session():
    return AuthSession(access_token="token-123", user_id="user-1", email="ops@example.org")


def seed_crm(session) -> SimpleNamespace:
    """Small but realistic directory: two health systems, two conferences, five attendees, one list."""
    mercy = create_health_system(
        session, name="Mercy Regional", city="Springfield", state="IL", definitive_id="DEF-100"
    )
    jane_hc = create_health_system(session, name="Jane Health Center", city="Austin", state="TX")
    summit = create_conference(
        session, name="HIMSS Summit", start_date="2024-03-11", end_date="2024-03-14", location="Orlando, FL"
    )
    forum = create_conference(
        session, name="Rural Health Forum", start_date="2023-09-02", end_date="2023-09-03", location="Omaha, NE"
    )
    session.flush()

    jane = create_attendee(
        session,
        first_name="Jane",
        last_name="Doe",
        title="CNO",
        company="Mercy Regional",
        email="jane.doe@mercy.org",
        health_system_id=mercy.id,
        certifications=["RN", "CPHIMS"],
    )
    omar = create_attendee(
        session,
        first_name="Omar",
        last_name="Ali",
        title="CIO",
        company="Independent",
        email="omar@example.org",
        health_system_id=jane_hc.id,
    )
    lee = create_attendee(session, first_name="Lee", last_name="Chen", title="", company=None, email="lee@chen.io")
    ana = create_attendee(
        session, first_name="Ana", last_name="Baker", title="Director", company="Mercy Regional", email=None
    )
    zed = create_attendee(session, first_name="Zed", last_name="Young", title="Analyst", company="Acme Health")
    session.flush()

    link_attendee_conference(session, jane.id, summit.id)
    link_attendee_conference(session, jane.id, forum.id)
    link_attendee_conference(session, omar.id, summit.id)

    speakers = create_list(session, "Speakers")
    add_attendees_to_list(session, speakers.id, [jane.id, lee.id, zed.id])
    session.commit()

    return SimpleNamespace(
        mercy=mercy.id,
        jane_hc=jane_hc.id,
        summit=summit.id,
        forum=forum.id,
        jane=jane.id,
        omar=omar.id,
        lee=lee.id,
        ana=ana.id,
        zed=zed.id,
        speakers=speakers.id,
    )


@pytest.fixture
def seeded(session):
    """Seeded in-memory session plus the ids of the seeded rows."""
    return SimpleNamespace(session=session, ids=seed_crm(session))


@pytest.fixture
def seeded_db(db_url):
    """Seeded file database; returns (url, ids)."""
    factory = get_session_factory(db_url)
    db_session = factory()
    try:
        ids = seed_crm(db_session)
    finally:
        db_session.close()
    return SimpleNamespace(url=db_url, ids=ids)
