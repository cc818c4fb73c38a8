"""
Exception hierarchy for the calendar export run.

Per-token failures (UserNotFound, UserAmbiguous and retrieval UpstreamError)
are caught by the batch loop; everything else ends the run.
"""


class CalendarExportError(Exception):
    """Base class for all export failures."""


# =============================================================================
# AUTHORIZATION
# =============================================================================


class AuthError(CalendarExportError):
    """Device authorization or token acquisition failed."""


class AuthorizationTimeout(AuthError):
    """The device code expired before the operator completed sign-in."""


class AuthorizationDenied(AuthError):
    """The operator declined the authorization request."""


class AuthorizationNetworkError(AuthError):
    """The authority could not be reached during the grant."""


# =============================================================================
# DIRECTORY / CALENDAR
# =============================================================================


class UserResolutionError(CalendarExportError):
    """A user token could not be resolved to exactly one directory user."""

    def __init__(self, token: str, message: str):
        self.token = token
        super().__init__(message)


class UserNotFound(UserResolutionError):
    def __init__(self, token: str):
        super().__init__(token, f"No user found for {token}")


class UserAmbiguous(UserResolutionError):
    def __init__(self, token: str, count: int):
        self.count = count
        super().__init__(token, f"No unique user found for {token} ({count} matches)")


class UpstreamError(CalendarExportError):
    """A Graph request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# EXPORT
# =============================================================================


class RenderError(CalendarExportError):
    """The export could not be rendered."""


class DeliveryError(CalendarExportError):
    """The rendered export could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)
