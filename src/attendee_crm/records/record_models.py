"""Client-side record models.

Each record carries an explicit ``kind`` discriminant so consumers never have
to guess the record type from which fields happen to be present.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class HealthSystemSummary(BaseModel):
    """Health system as embedded on an attendee."""
    id: str
    name: str
    definitive_id: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class ConferenceSummary(BaseModel):
    """Conference as embedded on an attendee."""
    id: str
    name: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None


class AttendeeSummary(BaseModel):
    """Attendee as embedded on a health system or conference."""
    id: str
    first_name: str
    last_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class AttendeeRecord(BaseModel):
    kind: Literal["attendee"] = "attendee"
    id: str
    first_name: str
    last_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    notes: Optional[str] = None
    certifications: List[str] = []
    health_system_id: Optional[str] = None
    health_system: Optional[HealthSystemSummary] = None
    conferences: List[ConferenceSummary] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()


class HealthSystemRecord(BaseModel):
    kind: Literal["health_system"] = "health_system"
    id: str
    name: str
    definitive_id: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    attendees: List[AttendeeSummary] = []
    created_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name


class ConferenceRecord(BaseModel):
    kind: Literal["conference"] = "conference"
    id: str
    name: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    attendees: List[AttendeeSummary] = []
    created_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name


Record = Annotated[
    Union[AttendeeRecord, HealthSystemRecord, ConferenceRecord],
    Field(discriminator="kind"),
]


class ListSummary(BaseModel):
    """A saved attendee list with its derived member count."""
    id: str
    name: str
    count: int = 0
