"""
Delivery of the rendered export to SharePoint/OneDrive, stdout or a local file.
"""

import logging
import sys
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit

import httpx
from azure.core.credentials import TokenCredential
from kiota_abstractions.api_error import APIError
from msgraph import GraphServiceClient

from core.config import GRAPH_BASE_URL, GRAPH_DEFAULT_SCOPE, UPLOAD_SUCCESS_CODES
from core.errors import DeliveryError
from models.export import DeliveryTarget, Destination

logger = logging.getLogger(__name__)

# First path segment of site-scoped SharePoint URLs, e.g. /sites/<name>/...
SITE_PATH_PREFIXES = {"sites", "teams", "personal"}


# =============================================================================
# SHAREPOINT / ONEDRIVE
# =============================================================================


def split_site_url(url: str) -> tuple[str, str]:
    """
    Split a SharePoint URL into a Graph site reference and the full decoded URL.

    https://contoso.sharepoint.com/sites/team/Shared Documents/a.xlsx gives
    ("contoso.sharepoint.com:/sites/team", <decoded url>).
    """
    parts = urlsplit(url)
    segments = [unquote(s) for s in parts.path.split("/") if s]
    if len(segments) >= 2 and segments[0] in SITE_PATH_PREFIXES:
        site_ref = f"{parts.hostname}:/{segments[0]}/{segments[1]}"
    else:
        site_ref = parts.hostname or ""
    return site_ref, unquote(url)


async def resolve_drive_item(graph: GraphServiceClient, url: str) -> tuple[str, str]:
    """
    Find the document library holding url.

    Returns:
        Tuple of (drive_id, item path relative to the drive root)
    """
    site_ref, decoded_url = split_site_url(url)
    site_url = f"{GRAPH_BASE_URL}/sites/{quote(site_ref, safe=':/')}"

    try:
        site = await graph.sites.by_site_id(site_ref).with_url(site_url).get()
        drives_response = await graph.sites.by_site_id(site.id).drives.get()
    except APIError as e:
        status = getattr(e, "response_status_code", None)
        raise DeliveryError(f"Cannot resolve {url}: {e}", status_code=status) from e

    drives = drives_response.value if drives_response and drives_response.value else []

    best_drive = None
    best_prefix = ""
    for drive in drives:
        if not drive.web_url:
            continue
        prefix = unquote(drive.web_url).rstrip("/") + "/"
        if decoded_url.startswith(prefix) and len(prefix) > len(best_prefix):
            best_drive, best_prefix = drive, prefix

    if best_drive is None:
        raise DeliveryError(f"No document library found for {url}")

    item_path = decoded_url[len(best_prefix):].strip("/")
    if not item_path:
        raise DeliveryError(f"No file name in {url}")
    return best_drive.id, item_path


async def upload_to_drive(
    graph: GraphServiceClient,
    credential: TokenCredential,
    data: bytes,
    url: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """
    PUT data as the content of the drive item at url.

    Raises:
        DeliveryError: on any status other than 200/201, carrying status and body
    """
    drive_id, item_path = await resolve_drive_item(graph, url)
    upload_url = f"{GRAPH_BASE_URL}/drives/{drive_id}/root:/{quote(item_path)}:/content"
    token = credential.get_token(GRAPH_DEFAULT_SCOPE)

    try:
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.put(
                upload_url,
                content=data,
                headers={"Authorization": f"Bearer {token.token}"},
            )
    except httpx.HTTPError as e:
        raise DeliveryError(f"Upload to {url} failed: {e}") from e

    if response.status_code not in UPLOAD_SUCCESS_CODES:
        raise DeliveryError(
            f"{response.status_code} {response.reason_phrase}: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    logger.info("Uploaded %d bytes to %s", len(data), url)


# =============================================================================
# DISPATCH
# =============================================================================


def write_local_file(data: bytes, path: str) -> None:
    """Create or truncate path and write data."""
    output_path = Path(path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)
    except OSError as e:
        raise DeliveryError(f"Cannot write {path}: {e}") from e


def write_stdout(data: bytes, stream=None) -> None:
    stream = stream or sys.stdout.buffer
    stream.write(data)
    stream.flush()


async def deliver(
    data: bytes,
    destination: Destination,
    graph: GraphServiceClient | None = None,
    credential: TokenCredential | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    stream=None,
) -> None:
    """
    Send the rendered export to its destination.

    Raises:
        DeliveryError: if the upload or write fails
    """
    logger.info("Writing to %s", destination.raw)

    if destination.target == DeliveryTarget.REMOTE:
        if graph is None or credential is None:
            raise DeliveryError(f"Upload to {destination.raw} needs an authenticated client")
        await upload_to_drive(graph, credential, data, destination.raw, transport=transport)
    elif destination.target == DeliveryTarget.STDOUT:
        write_stdout(data, stream)
    else:
        write_local_file(data, destination.raw)
