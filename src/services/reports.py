"""
Export rendering for Excel and JSON formats.
"""

import json
import re
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from core.config import (
    ATTENDEE_FONT_SIZE,
    ATTENDEE_LINE_HEIGHT,
    ATTENDEE_SEPARATOR,
    COLUMN_WIDTHS,
    EXCEL_DATETIME_FORMAT,
    EXPORT_HEADERS,
    JSON_INDENT,
    LINK_LABEL,
    ROW_HEIGHT_PADDING,
    SHEET_NAME_INVALID_CHARS,
    SHEET_NAME_REPLACEMENT,
)
from core.errors import RenderError
from models.events import CalendarEvent, UserEventCollection
from models.export import ExportFormat

_SHEET_NAME_RE = re.compile(SHEET_NAME_INVALID_CHARS)


def escape_sheet_name(name: str) -> str:
    """Replace characters Excel rejects in sheet titles with '_'."""
    return _SHEET_NAME_RE.sub(SHEET_NAME_REPLACEMENT, name)


def format_excel_datetime(value) -> str:
    """Format as 'YYYY-MM-DD HH:MM:SS' in local time."""
    return value.astimezone().strftime(EXCEL_DATETIME_FORMAT)


def row_height(event: CalendarEvent) -> float:
    """Height that keeps every attendee line visible."""
    return max(1, len(event.attendees)) * ATTENDEE_LINE_HEIGHT + ROW_HEIGHT_PADDING


# =============================================================================
# EXCEL
# =============================================================================


def write_event_sheet(ws, collection: UserEventCollection):
    """
    Write one user's events to a worksheet.

    Row 1 holds EXPORT_HEADERS; each event row starts with a LINK hyperlink
    to the event in Outlook on the web.
    """
    for col_idx, header in enumerate(EXPORT_HEADERS, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = Font(bold=True)

    for row_idx, event in enumerate(collection.events, start=2):
        ws.row_dimensions[row_idx].height = row_height(event)

        link_cell = ws.cell(row=row_idx, column=1, value=LINK_LABEL)
        if event.link:
            link_cell.hyperlink = event.link
            link_cell.style = "Hyperlink"

        ws.cell(row=row_idx, column=2, value=format_excel_datetime(event.start))
        ws.cell(row=row_idx, column=3, value=format_excel_datetime(event.end))
        ws.cell(row=row_idx, column=4, value=event.subject)
        ws.cell(row=row_idx, column=5, value=event.location)
        ws.cell(row=row_idx, column=6, value=event.organizer)

        attendees_cell = ws.cell(
            row=row_idx, column=7, value=ATTENDEE_SEPARATOR.join(event.attendees)
        )
        attendees_cell.font = Font(size=ATTENDEE_FONT_SIZE)
        attendees_cell.alignment = Alignment(wrap_text=True, vertical="center")

    for first_col, last_col, width in COLUMN_WIDTHS:
        for col_idx in range(first_col, last_col + 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = width


def create_events_workbook(collections: list[UserEventCollection]) -> Workbook:
    """
    Create a workbook with one sheet per user, in collection order.

    With no collections the default empty sheet is kept so the file stays
    valid. Titles that collide after escaping are renamed by openpyxl.
    """
    wb = Workbook()
    default_sheet = wb.active

    for collection in collections:
        try:
            ws = wb.create_sheet(title=escape_sheet_name(collection.user.display_name))
        except ValueError as e:
            raise RenderError(f"Cannot create sheet for {collection.user.display_name}: {e}") from e
        write_event_sheet(ws, collection)

    if collections:
        wb.remove(default_sheet)
    return wb


def render_spreadsheet(collections: list[UserEventCollection]) -> bytes:
    """Render collections as .xlsx bytes."""
    wb = create_events_workbook(collections)
    buffer = BytesIO()
    try:
        wb.save(buffer)
    except (OSError, ValueError, IndexError) as e:
        raise RenderError(f"Cannot write workbook: {e}") from e
    return buffer.getvalue()


# =============================================================================
# JSON
# =============================================================================


def render_document(collections: list[UserEventCollection]) -> bytes:
    """Render collections as an indented JSON document."""
    data = [collection.model_dump(mode="json") for collection in collections]
    try:
        text = json.dumps(data, indent=JSON_INDENT, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise RenderError(f"Cannot encode JSON: {e}") from e
    return (text + "\n").encode("utf-8")


def render_export(collections: list[UserEventCollection], export_format: ExportFormat) -> bytes:
    """
    Render collections in export_format.

    Raises:
        RenderError: if the encoder fails
    """
    if export_format == ExportFormat.SPREADSHEET:
        return render_spreadsheet(collections)
    if export_format == ExportFormat.DOCUMENT:
        return render_document(collections)
    raise RenderError(f"Unsupported format {export_format}")
