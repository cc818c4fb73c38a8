"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from kiota_abstractions.api_error import APIError
from msgraph.generated.models.attendee import Attendee
from msgraph.generated.models.date_time_time_zone import DateTimeTimeZone
from msgraph.generated.models.email_address import EmailAddress
from msgraph.generated.models.event import Event
from msgraph.generated.models.event_collection_response import EventCollectionResponse
from msgraph.generated.models.location import Location
from msgraph.generated.models.recipient import Recipient
from msgraph.generated.models.user import User
from msgraph.generated.models.user_collection_response import UserCollectionResponse

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def api_error(status: int, message: str = "error") -> APIError:
    """Graph SDK error carrying an HTTP status."""
    error = APIError(message)
    error.response_status_code = status
    return error


def make_user(user_id: str, name: str, mail: str | None = None) -> User:
    return User(
        id=user_id,
        display_name=name,
        user_principal_name=mail or f"{user_id}@example.com",
        mail=mail,
    )


def make_event(
    subject: str,
    start: str,
    end: str,
    time_zone: str = "UTC",
    attendees: list[tuple[str, str | None]] | None = None,
    organizer: tuple[str, str] | None = ("Alice Example", "alice@example.com"),
    location: str | None = "Room 1",
    web_link: str | None = "https://outlook.office365.com/owa/?itemid=1",
) -> Event:
    """Build an MS Graph Event the way calendarView returns it."""
    return Event(
        subject=subject,
        start=DateTimeTimeZone(date_time=start, time_zone=time_zone),
        end=DateTimeTimeZone(date_time=end, time_zone=time_zone),
        location=Location(display_name=location) if location is not None else None,
        organizer=(
            Recipient(email_address=EmailAddress(name=organizer[0], address=organizer[1]))
            if organizer
            else None
        ),
        attendees=[
            Attendee(email_address=EmailAddress(name=name, address=address))
            for name, address in (attendees or [])
        ],
        web_link=web_link,
    )


def paged_view(pages: list[list[Event]]) -> MagicMock:
    """Calendar view builder mock returning pages linked by @odata.nextLink."""
    responses = [
        EventCollectionResponse(
            value=events,
            odata_next_link=f"https://graph.microsoft.com/v1.0/next/{idx + 1}"
            if idx + 1 < len(pages)
            else None,
        )
        for idx, events in enumerate(pages)
    ]
    view = MagicMock()
    view.get = AsyncMock(return_value=responses[0])

    def with_url(url):
        builder = MagicMock()
        builder.get = AsyncMock(return_value=responses[int(url.rsplit("/", 1)[1])])
        return builder

    view.with_url.side_effect = with_url
    return view


class FakeGraph:
    """
    Minimal stand-in for GraphServiceClient.

    users maps directory IDs to User objects, search maps mail addresses to
    the users a $filter search returns, calendars maps user IDs to pages of
    events or to an exception raised by the calendar view.
    """

    def __init__(self, users=None, search=None, calendars=None, me=None):
        self.users_by_id = users or {}
        self.search_results = search or {}
        self.calendars = calendars or {}
        self.me = MagicMock()
        self.me.get = AsyncMock(return_value=me)
        self.users = MagicMock()
        self.users.by_user_id.side_effect = self._by_user_id
        self.users.get = AsyncMock(side_effect=self._search)
        self.filters = []

    def _by_user_id(self, user_id):
        builder = MagicMock()
        if user_id in self.users_by_id:
            builder.get = AsyncMock(return_value=self.users_by_id[user_id])
        else:
            builder.get = AsyncMock(side_effect=api_error(404, f"{user_id} not found"))

        calendar = self.calendars.get(user_id, [[]])
        if isinstance(calendar, Exception):
            builder.calendar.calendar_view.get = AsyncMock(side_effect=calendar)
        else:
            builder.calendar.calendar_view = paged_view(calendar)
        return builder

    async def _search(self, request_configuration=None):
        mail_filter = request_configuration.query_parameters.filter
        self.filters.append(mail_filter)
        address = mail_filter[len("mail eq '"):-1].replace("''", "'")
        return UserCollectionResponse(value=self.search_results.get(address, []))


@pytest.fixture
def alice():
    return make_user("id-alice", "Alice Example", "alice@example.com")


@pytest.fixture
def bob():
    return make_user("id-bob", "Bob / Builder", "bob@example.com")


@pytest.fixture
def sample_events():
    """Events in deliberately unsorted order."""
    return [
        make_event(
            "Planning",
            "2024-01-01T15:00:00.0000000",
            "2024-01-01T16:00:00.0000000",
            attendees=[("Alice Example", "alice@example.com"), ("Bob Builder", "bob@example.com")],
        ),
        make_event("Standup", "2024-01-01T09:00:00.0000000", "2024-01-01T09:15:00.0000000"),
    ]
