"""
Data models for users, events and date ranges.

All models are frozen: they are built once during retrieval and only read
afterwards by the renderers.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_validator


class CalendarUser(BaseModel):
    """Resolved directory user."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    principal_id: str
    principal_name: str | None = None
    primary_address: str | None = None


class CalendarEvent(BaseModel):
    """One calendar occurrence, times in the local timezone."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    subject: str = ""
    location: str = ""
    organizer: str = ""
    attendees: list[str] = []
    link: str = ""

    @model_validator(mode="after")
    def check_order(self):
        if self.end < self.start:
            raise ValueError(f"event ends before it starts ({self.start} > {self.end})")
        return self


class UserEventCollection(BaseModel):
    """A user's events sorted by start time."""

    model_config = ConfigDict(frozen=True)

    user: CalendarUser
    events: list[CalendarEvent] = []


class DateRange(BaseModel):
    """Half-open [start, end) window of aware local datetimes."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self):
        if self.start >= self.end:
            raise ValueError(f"empty date range ({self.start} >= {self.end})")
        return self
