"""
Configuration constants and environment setup.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================

TOKEN_CACHE_PATH = os.environ.get("TOKEN_CACHE_PATH", "token_cache.json")
DEFAULT_OUTPUT = os.environ.get("CALENDAR_EXPORT_OUTPUT", "events.xlsx")

# =============================================================================
# MS GRAPH CREDENTIALS (from environment)
# =============================================================================

GRAPH_TENANT_ID = os.environ.get("MICROSOFT_GRAPH_TENANT_ID", "common")
GRAPH_APP_ID = os.environ.get(
    "MICROSOFT_GRAPH_APP_ID", "b7dbe94f-2f3a-4b98-a372-a99d0edff196"
)
# Optional: switches to app-only auth (no device code, no "me")
GRAPH_CLIENT_SECRET = os.environ.get("MICROSOFT_GRAPH_CLIENT_SECRET", "")

GRAPH_AUTHORITY_HOST = "https://login.microsoftonline.com"
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"

# offline_access is added by MSAL itself and must not be requested explicitly
GRAPH_SCOPES = [
    "User.ReadBasic.All",
    "Calendars.Read",
    "Calendars.Read.Shared",
    "Sites.Read.All",
    "Files.ReadWrite.All",
]

# =============================================================================
# CALENDAR CONFIGURATION
# =============================================================================

CALENDAR_VIEW_PAGE_SIZE = 100

# Sent as Prefer: outlook.timezone; must be a tag zoneinfo understands or
# event times fall back to the local timezone
PREFERRED_TIMEZONE = os.environ.get("CALENDAR_EXPORT_TIMEZONE", "UTC")

SELF_TOKEN = "me"
DATE_FLAG_FORMAT = "%Y%m%d"
MONTH_FLAG_FORMAT = "%Y%m"

# =============================================================================
# EXPORT CONFIGURATION
# =============================================================================

EXPORT_HEADERS = ["Outlook", "Start", "End", "Subject", "Location", "Organizer", "Attendees"]
EXCEL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LINK_LABEL = "LINK"
ATTENDEE_SEPARATOR = "\r\n"
ATTENDEE_FONT_SIZE = 11
ATTENDEE_LINE_HEIGHT = 15
ROW_HEIGHT_PADDING = 2

# (first column, last column, width), 1-based inclusive
COLUMN_WIDTHS = [(2, 3, 20), (4, 6, 60), (7, 7, 80)]

# Characters Excel does not allow in sheet titles
SHEET_NAME_INVALID_CHARS = r"[/\\?*\[\]]"
SHEET_NAME_REPLACEMENT = "_"

JSON_INDENT = 2

# =============================================================================
# DELIVERY CONFIGURATION
# =============================================================================

REMOTE_PREFIX = "https://"
STDOUT_DESTINATION = "-"
SPREADSHEET_SUFFIX = ".xlsx"
DOCUMENT_SUFFIX = ".json"
UPLOAD_SUCCESS_CODES = {200, 201}

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(levelname).1s: %(message)s"
