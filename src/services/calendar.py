"""
Calendar event fetching from MS Graph.
"""

import calendar
import logging
from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from kiota_abstractions.api_error import APIError
from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.users.item.calendar.calendar_view.calendar_view_request_builder import (
    CalendarViewRequestBuilder,
)
from pydantic import ValidationError

from core.config import (
    CALENDAR_VIEW_PAGE_SIZE,
    DATE_FLAG_FORMAT,
    MONTH_FLAG_FORMAT,
    PREFERRED_TIMEZONE,
    SELF_TOKEN,
)
from core.errors import UpstreamError, UserResolutionError
from models.events import CalendarEvent, CalendarUser, DateRange, UserEventCollection
from services.directory import resolve_user

logger = logging.getLogger(__name__)


# =============================================================================
# DATE UTILITIES
# =============================================================================


def _parse_flag(value: str, last_day: bool) -> date:
    """Parse YYYYMMDD, or YYYYMM meaning the first (or last) day of that month."""
    if len(value) == 6:
        month = datetime.strptime(value, MONTH_FLAG_FORMAT).date()
        if last_day:
            return month.replace(day=calendar.monthrange(month.year, month.month)[1])
        return month
    return datetime.strptime(value, DATE_FLAG_FORMAT).date()


def local_midnight(d: date) -> datetime:
    """Midnight of d in the process local timezone."""
    return datetime(d.year, d.month, d.day).astimezone()


def build_date_range(start: str | None, end: str | None = None, today: date | None = None) -> DateRange:
    """
    Build the query window from --start/--end flag values.

    The end day is inclusive, so the window runs up to midnight after it.
    A missing start means today; a missing end means the start day.

    Raises:
        ValueError: on malformed flags or an end before the start
    """
    if start:
        start_date = _parse_flag(start, last_day=False)
    else:
        start_date = today or date.today()

    if end:
        end_date = _parse_flag(end, last_day=True)
    elif start and len(start) == 6:
        end_date = _parse_flag(start, last_day=True)
    else:
        end_date = start_date

    return DateRange(
        start=local_midnight(start_date),
        end=local_midnight(end_date + timedelta(days=1)),
    )


# =============================================================================
# EVENT CONVERSION
# =============================================================================


def resolve_timezone(tag: str | None) -> tzinfo | None:
    """Look up a timezone tag; None when zoneinfo does not know it."""
    if not tag:
        return None
    try:
        return ZoneInfo(tag)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r, using local time", tag)
        return None


def parse_event_time(value) -> datetime | None:
    """
    Convert a Graph DateTimeTimeZone to an aware local datetime.

    Unknown timezone tags are read as local time.
    """
    if value is None or not value.date_time:
        return None
    naive = datetime.fromisoformat(value.date_time.rstrip("Z"))
    zone = resolve_timezone(value.time_zone)
    if zone is None:
        return naive.astimezone()
    return naive.replace(tzinfo=zone).astimezone()


def format_email_address(address) -> str:
    """Format as 'Name <address>'."""
    if address is None:
        return ""
    return f"{address.name or ''} <{address.address or ''}>"


def extract_attendees(event, primary_address: str | None, exclude_self: bool) -> list[str]:
    """Format attendees, dropping the calendar owner when exclude_self is set."""
    attendees = []
    for attendee in event.attendees or []:
        email = attendee.email_address
        address = email.address if email else None
        if exclude_self and primary_address and address and address == primary_address:
            continue
        attendees.append(format_email_address(email) if email else " <>")
    return attendees


def parse_event(event, user: CalendarUser, exclude_self: bool = False) -> CalendarEvent | None:
    """
    Parse MS Graph event into our format.

    Returns None for events without usable start/end times.
    """
    start = parse_event_time(event.start)
    end = parse_event_time(event.end)
    if start is None or end is None:
        logger.warning("Skipping event without start/end: %s", event.subject)
        return None

    organizer = ""
    if event.organizer:
        organizer = format_email_address(event.organizer.email_address)

    location = ""
    if event.location and event.location.display_name:
        location = event.location.display_name

    try:
        return CalendarEvent(
            start=start,
            end=end,
            subject=event.subject or "",
            location=location,
            organizer=organizer,
            attendees=extract_attendees(event, user.primary_address, exclude_self),
            link=event.web_link or "",
        )
    except ValidationError as e:
        logger.warning("Skipping malformed event %s: %s", event.subject, e)
        return None


# =============================================================================
# FETCHING
# =============================================================================


async def fetch_user_events(
    graph: GraphServiceClient,
    user: CalendarUser,
    date_range: DateRange,
    exclude_self: bool = False,
    time_zone: str = PREFERRED_TIMEZONE,
) -> list[CalendarEvent]:
    """
    Fetch all calendar view occurrences for user within date_range.

    Follows @odata.nextLink until exhausted and returns events sorted by start.

    Raises:
        UpstreamError: if any page request fails
    """
    query_params = CalendarViewRequestBuilder.CalendarViewRequestBuilderGetQueryParameters(
        start_date_time=date_range.start.isoformat(),
        end_date_time=date_range.end.isoformat(),
        top=CALENDAR_VIEW_PAGE_SIZE,
    )
    config = RequestConfiguration(query_parameters=query_params)
    config.headers.add("Prefer", f'outlook.timezone="{time_zone}"')

    # Next links carry the query already; only the header needs repeating
    next_config = RequestConfiguration()
    next_config.headers.add("Prefer", f'outlook.timezone="{time_zone}"')

    calendar_view = graph.users.by_user_id(user.principal_id).calendar.calendar_view
    events = []
    pages = 0

    try:
        page = await calendar_view.get(request_configuration=config)
        while page is not None:
            pages += 1
            for raw_event in page.value or []:
                parsed = parse_event(raw_event, user, exclude_self)
                if parsed is not None:
                    events.append(parsed)
            if not page.odata_next_link:
                break
            page = await calendar_view.with_url(page.odata_next_link).get(
                request_configuration=next_config
            )
    except (APIError, httpx.HTTPError) as e:
        status = getattr(e, "response_status_code", None)
        raise UpstreamError(
            f"Fetching events of {user.display_name} failed ({status}): {e}", status_code=status
        ) from e

    logger.info("Got %d events in %d pages", len(events), pages)
    events.sort(key=lambda e: e.start)
    return events


async def collect_user_events(
    graph: GraphServiceClient,
    tokens: list[str],
    date_range: DateRange,
    exclude_self: bool = False,
    time_zone: str = PREFERRED_TIMEZONE,
) -> list[UserEventCollection]:
    """
    Resolve each token and fetch its events, one user at a time.

    Tokens that cannot be resolved, or whose calendar cannot be read, are
    logged and skipped; the result keeps the input order of the rest.
    UpstreamError raised while resolving a user ends the run.
    """
    collections = []
    for token in tokens or [SELF_TOKEN]:
        logger.info("User %s", token)
        try:
            user = await resolve_user(graph, token)
        except UserResolutionError as e:
            logger.error("%s, skipping", e)
            continue

        logger.info("Fetching events of %s (%s)", user.principal_name or user.display_name, user.principal_id)
        try:
            events = await fetch_user_events(graph, user, date_range, exclude_self, time_zone)
        except UpstreamError as e:
            logger.error("%s", e)
            continue

        collections.append(UserEventCollection(user=user, events=events))
    return collections
