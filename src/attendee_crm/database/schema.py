from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class HealthSystem(Base):
    __tablename__ = "health_systems"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, index=True)
    definitive_id = Column(String, nullable=True)  # External registry ID
    website = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip = Column(String, nullable=True)
    created_at = Column(String, nullable=False)  # ISO 8601 string

    attendees = relationship("Attendee", back_populates="health_system")


class Attendee(Base):
    __tablename__ = "attendees"

    id = Column(String, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    company = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    linkedin_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    certifications = Column(JSON, nullable=False, default=list)  # list of tags
    health_system_id = Column(String, ForeignKey("health_systems.id"), nullable=True, index=True)
    created_at = Column(String, nullable=False)  # ISO 8601 string
    updated_at = Column(String, nullable=False)  # ISO 8601 string

    health_system = relationship("HealthSystem", back_populates="attendees")
    conference_links = relationship("AttendeeConference", back_populates="attendee")
    list_links = relationship("AttendeeList", back_populates="attendee")


class Conference(Base):
    __tablename__ = "conferences"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    start_date = Column(String, nullable=True)  # ISO 8601 date
    end_date = Column(String, nullable=True)  # ISO 8601 date
    location = Column(String, nullable=True)
    created_at = Column(String, nullable=False)  # ISO 8601 string

    attendee_links = relationship("AttendeeConference", back_populates="conference")


class AttendeeConference(Base):
    """Join rows between attendees and conferences, unique per pair."""
    __tablename__ = "attendee_conferences"

    id = Column(String, primary_key=True)
    attendee_id = Column(String, ForeignKey("attendees.id"), nullable=False)
    conference_id = Column(String, ForeignKey("conferences.id"), nullable=False)
    created_at = Column(String, nullable=False)

    attendee = relationship("Attendee", back_populates="conference_links")
    conference = relationship("Conference", back_populates="attendee_links")

    __table_args__ = (
        UniqueConstraint("attendee_id", "conference_id", name="uq_attendee_conference_pair"),
        Index("idx_attendee_conferences_conference", "conference_id"),
    )


class CrmList(Base):
    __tablename__ = "lists"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(String, nullable=False)

    memberships = relationship("AttendeeList", back_populates="crm_list")


class AttendeeList(Base):
    """List membership rows, unique per (attendee_id, list_id)."""
    __tablename__ = "attendee_lists"

    id = Column(String, primary_key=True)
    attendee_id = Column(String, ForeignKey("attendees.id"), nullable=False)
    list_id = Column(String, ForeignKey("lists.id"), nullable=False)
    created_at = Column(String, nullable=False)

    attendee = relationship("Attendee", back_populates="list_links")
    crm_list = relationship("CrmList", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("attendee_id", "list_id", name="uq_attendee_list_pair"),
        Index("idx_attendee_lists_list", "list_id"),
    )


def create_all(engine: Engine) -> None:
    Base.metadata.create_all(engine)
