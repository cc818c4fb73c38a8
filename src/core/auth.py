"""
Token acquisition for MS Graph.

Delegated access uses the OAuth device authorization grant through MSAL, with
the MSAL token cache serialized to a JSON file so repeated runs reuse the
refresh token. When a client secret is configured an app-only
ClientSecretCredential is used instead and no cache file is involved.

Only load_token_cache() and save_token_cache() touch the cache file; every
other component receives the credential object explicitly.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

import msal
import requests
from azure.core.credentials import AccessToken
from azure.identity import ClientSecretCredential

from core.config import GRAPH_AUTHORITY_HOST
from core.errors import (
    AuthError,
    AuthorizationDenied,
    AuthorizationNetworkError,
    AuthorizationTimeout,
)

logger = logging.getLogger(__name__)

DENIED_ERRORS = {"authorization_declined", "access_denied"}
# MSAL stops polling at expires_at and hands back the last pending response
EXPIRED_ERRORS = {"expired_token", "code_expired", "authorization_pending", "slow_down"}


# =============================================================================
# CACHE FILE
# =============================================================================


def load_token_cache(path: str | Path) -> msal.SerializableTokenCache:
    """
    Load the MSAL token cache from disk.

    A missing or unreadable file is a cache miss: the returned cache is empty
    and the next authorize() falls through to the device code flow.
    """
    cache = msal.SerializableTokenCache()
    path = Path(path)
    try:
        state = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No token cache at %s", path)
        return cache
    except OSError as e:
        logger.warning("Cannot read token cache %s: %s", path, e)
        return cache

    try:
        cache.deserialize(state)
    except ValueError as e:
        logger.warning("Ignoring corrupt token cache %s: %s", path, e)
        return msal.SerializableTokenCache()
    return cache


def save_token_cache(cache: msal.SerializableTokenCache, path: str | Path) -> bool:
    """Write the cache back to disk if it changed. Returns True if written."""
    if not cache.has_state_changed:
        return False
    path = Path(path)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(cache.serialize(), encoding="utf-8")
    cache.has_state_changed = False
    logger.debug("Saved token cache to %s", path)
    return True


# =============================================================================
# DEVICE CODE CREDENTIAL
# =============================================================================


def log_device_code_message(message: str) -> None:
    """Show the device code instructions; logged at WARNING so they pass the default level."""
    logger.warning("%s", message)


def _raise_for_result(result: dict) -> None:
    """Map an MSAL error response to the matching AuthError."""
    error = result.get("error", "")
    description = result.get("error_description") or error or "unknown error"
    if error in DENIED_ERRORS:
        raise AuthorizationDenied(f"Authorization denied: {description}")
    if error in EXPIRED_ERRORS:
        raise AuthorizationTimeout(f"Authorization timed out: {description}")
    raise AuthError(f"Authorization failed: {description}")


class DeviceCodeCredential:
    """
    azure-core TokenCredential backed by an MSAL public client.

    The Graph SDK calls get_token() before every request; MSAL returns the
    cached access token or redeems the refresh token when it has expired.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        scopes: list[str],
        cache: msal.SerializableTokenCache,
        prompt: Callable[[str], None] = log_device_code_message,
        timeout: float | None = None,
        app: msal.PublicClientApplication | None = None,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.scopes = list(scopes)
        self.cache = cache
        self.prompt = prompt
        self.timeout = timeout
        self._app = app

    @property
    def app(self) -> msal.PublicClientApplication:
        # Authority discovery hits the network, so construct on first use
        if self._app is None:
            try:
                self._app = msal.PublicClientApplication(
                    self.client_id,
                    authority=f"{GRAPH_AUTHORITY_HOST}/{self.tenant_id}",
                    token_cache=self.cache,
                )
            except requests.exceptions.RequestException as e:
                raise AuthorizationNetworkError(f"Cannot reach authority: {e}") from e
            except ValueError as e:
                raise AuthError(f"Invalid authority for tenant {self.tenant_id}: {e}") from e
        return self._app

    def _acquire_silent(self) -> dict | None:
        try:
            accounts = self.app.get_accounts()
            if not accounts:
                return None
            return self.app.acquire_token_silent(self.scopes, account=accounts[0])
        except requests.exceptions.RequestException as e:
            raise AuthorizationNetworkError(f"Token refresh failed: {e}") from e

    def _acquire_by_device_flow(self) -> dict:
        try:
            flow = self.app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                _raise_for_result(flow)

            if self.timeout is not None:
                flow["expires_at"] = min(flow.get("expires_at", float("inf")), time.time() + self.timeout)

            self.prompt(flow["message"])
            return self.app.acquire_token_by_device_flow(flow)
        except requests.exceptions.RequestException as e:
            raise AuthorizationNetworkError(f"Device authorization failed: {e}") from e

    def authorize(self) -> dict:
        """
        Make sure a usable token is in the cache.

        Tries the cache first; falls back to the interactive device code flow.

        Raises:
            AuthorizationTimeout: the device code expired
            AuthorizationDenied: the operator declined
            AuthorizationNetworkError: the authority was unreachable
            AuthError: any other grant failure
        """
        result = self._acquire_silent()
        if result and "access_token" in result:
            logger.info("Using cached credentials")
            return result

        logger.info("Starting device code authorization")
        result = self._acquire_by_device_flow()
        if "access_token" not in result:
            _raise_for_result(result)
        claims = result.get("id_token_claims") or {}
        logger.info("Signed in as %s", claims.get("preferred_username", "unknown"))
        return result

    def get_token(self, *scopes: str, **kwargs) -> AccessToken:
        # Graph asks for ".default"; the configured delegated scopes are what
        # the cached refresh token was issued for
        result = self._acquire_silent()
        if not result or "access_token" not in result:
            if result:
                _raise_for_result(result)
            raise AuthError("No cached credentials; authorization required")
        expires_on = int(time.time()) + int(result.get("expires_in", 0))
        return AccessToken(result["access_token"], expires_on)


# =============================================================================
# ENTRY POINT
# =============================================================================


def acquire_credential(
    tenant_id: str,
    client_id: str,
    scopes: list[str],
    cache_path: str | Path,
    client_secret: str = "",
    prompt: Callable[[str], None] = log_device_code_message,
    timeout: float | None = None,
):
    """
    Return an authorized credential for Graph.

    With a client secret this is an app-only ClientSecretCredential. Otherwise
    the token cache is loaded, the device code grant runs if needed, and the
    cache is saved once afterwards.
    """
    if client_secret:
        logger.info("Using app-only credentials for tenant %s", tenant_id)
        return ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
        )

    cache = load_token_cache(cache_path)
    credential = DeviceCodeCredential(
        tenant_id, client_id, scopes, cache, prompt=prompt, timeout=timeout
    )
    credential.authorize()
    save_token_cache(cache, cache_path)
    return credential
