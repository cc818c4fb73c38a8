"""
Directory user resolution from MS Graph.
"""

import logging

import httpx
from kiota_abstractions.api_error import APIError
from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.users.users_request_builder import UsersRequestBuilder

from core.config import SELF_TOKEN
from core.errors import UpstreamError, UserAmbiguous, UserNotFound
from models.events import CalendarUser

logger = logging.getLogger(__name__)

USER_FIELDS = ["id", "displayName", "userPrincipalName", "mail"]


def build_mail_filter(address: str) -> str:
    """
    Build an OData filter matching users by mail address.

    Single quotes are doubled as OData string literals require, so the
    address can never terminate the literal early.

    Raises:
        ValueError: if the address contains control characters
    """
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in address):
        raise ValueError(f"Invalid characters in address {address!r}")
    escaped = address.replace("'", "''")
    return f"mail eq '{escaped}'"


def to_calendar_user(user) -> CalendarUser:
    """Convert an MS Graph User into our format."""
    return CalendarUser(
        display_name=user.display_name or user.user_principal_name or user.id or "",
        principal_id=user.id or "",
        principal_name=user.user_principal_name,
        primary_address=user.mail,
    )


def _upstream_error(action: str, e: Exception) -> UpstreamError:
    status = getattr(e, "response_status_code", None)
    return UpstreamError(f"{action} failed ({status}): {e}", status_code=status)


async def search_user_by_mail(graph: GraphServiceClient, token: str) -> CalendarUser:
    """Find exactly one user whose mail equals token."""
    try:
        mail_filter = build_mail_filter(token)
    except ValueError:
        raise UserNotFound(token) from None

    query_params = UsersRequestBuilder.UsersRequestBuilderGetQueryParameters(
        filter=mail_filter,
        select=USER_FIELDS,
    )
    config = RequestConfiguration(query_parameters=query_params)

    try:
        users_response = await graph.users.get(request_configuration=config)
    except (APIError, httpx.HTTPError) as e:
        raise _upstream_error(f"User search for {token}", e) from e

    users = users_response.value if users_response and users_response.value else []
    if not users:
        raise UserNotFound(token)
    if len(users) > 1:
        raise UserAmbiguous(token, len(users))
    return to_calendar_user(users[0])


async def resolve_user(graph: GraphServiceClient, token: str) -> CalendarUser:
    """
    Resolve a user token to a single directory user.

    "me" is the signed-in user. Any other token is tried as a directory ID
    first, then, only if Graph answers 404, searched as a mail address.

    Raises:
        UserNotFound: no user matches the token
        UserAmbiguous: the mail search matched more than one user
        UpstreamError: any other Graph failure
    """
    if token == SELF_TOKEN:
        try:
            user = await graph.me.get()
        except (APIError, httpx.HTTPError) as e:
            raise _upstream_error("Lookup of signed-in user", e) from e
        if user is None:
            raise UserNotFound(token)
        return to_calendar_user(user)

    try:
        user = await graph.users.by_user_id(token).get()
    except (APIError, httpx.HTTPError) as e:
        if getattr(e, "response_status_code", None) != 404:
            raise _upstream_error(f"Lookup of {token}", e) from e
        logger.debug("No user with ID %s, searching by mail", token)
        return await search_user_by_mail(graph, token)

    if user is None:
        raise UserNotFound(token)
    return to_calendar_user(user)
