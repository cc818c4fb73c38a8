"""Tests for token cache handling and the device code credential."""

import json
import logging
import time

import msal
import pytest
import requests
from azure.identity import ClientSecretCredential

import core.auth
from core.auth import (
    DeviceCodeCredential,
    acquire_credential,
    load_token_cache,
    save_token_cache,
)
from core.errors import (
    AuthError,
    AuthorizationDenied,
    AuthorizationNetworkError,
    AuthorizationTimeout,
)

SCOPES = ["Calendars.Read"]
TOKEN = {"access_token": "access-1", "expires_in": 3600, "id_token_claims": {"preferred_username": "alice@example.com"}}


class FakeApp:
    """Stand-in for msal.PublicClientApplication."""

    def __init__(self, cache=None, accounts=None, silent=None, flow=None, result=None):
        self.cache = cache
        self.accounts = accounts or []
        self.silent = silent
        self.flow = flow if flow is not None else {
            "user_code": "ABCD-EFGH",
            "message": "Visit https://microsoft.com/devicelogin and enter ABCD-EFGH",
            "expires_at": time.time() + 900,
        }
        self.result = result if result is not None else TOKEN
        self.device_flows = []

    def get_accounts(self):
        return self.accounts

    def acquire_token_silent(self, scopes, account=None):
        return self.silent

    def initiate_device_flow(self, scopes=None):
        if isinstance(self.flow, Exception):
            raise self.flow
        return dict(self.flow)

    def acquire_token_by_device_flow(self, flow):
        self.device_flows.append(flow)
        if self.cache is not None:
            self.cache.has_state_changed = True
        return self.result


def make_credential(app, prompts=None, timeout=None):
    return DeviceCodeCredential(
        "common",
        "client-id",
        SCOPES,
        msal.SerializableTokenCache(),
        prompt=(prompts.append if prompts is not None else lambda message: None),
        timeout=timeout,
        app=app,
    )


class TestTokenCacheFile:
    def test_missing_file_is_cache_miss(self, tmp_path):
        cache = load_token_cache(tmp_path / "token_cache.json")
        assert isinstance(cache, msal.SerializableTokenCache)
        assert not cache.has_state_changed

    def test_corrupt_file_is_cache_miss(self, tmp_path):
        path = tmp_path / "token_cache.json"
        path.write_text("{not json", encoding="utf-8")
        cache = load_token_cache(path)
        assert isinstance(cache, msal.SerializableTokenCache)

    def test_save_only_when_changed(self, tmp_path):
        path = tmp_path / "token_cache.json"
        cache = msal.SerializableTokenCache()

        assert save_token_cache(cache, path) is False
        assert not path.exists()

        cache.has_state_changed = True
        assert save_token_cache(cache, path) is True
        assert isinstance(json.loads(path.read_text(encoding="utf-8")), dict)
        assert not cache.has_state_changed

    def test_save_overwrites(self, tmp_path):
        path = tmp_path / "token_cache.json"
        path.write_text("stale", encoding="utf-8")
        cache = msal.SerializableTokenCache()
        cache.has_state_changed = True
        save_token_cache(cache, path)
        assert path.read_text(encoding="utf-8") != "stale"


class TestAuthorize:
    def test_cached_account_skips_device_flow(self):
        app = FakeApp(accounts=[{"username": "alice"}], silent=TOKEN)
        prompts = []
        make_credential(app, prompts).authorize()
        assert prompts == []
        assert app.device_flows == []

    def test_device_flow_when_cache_empty(self):
        app = FakeApp()
        prompts = []
        result = make_credential(app, prompts).authorize()
        assert result["access_token"] == "access-1"
        assert prompts == ["Visit https://microsoft.com/devicelogin and enter ABCD-EFGH"]

    def test_device_flow_when_refresh_fails(self):
        app = FakeApp(accounts=[{"username": "alice"}], silent={"error": "invalid_grant"})
        make_credential(app).authorize()
        assert len(app.device_flows) == 1

    def test_declined(self):
        app = FakeApp(result={"error": "authorization_declined", "error_description": "no"})
        with pytest.raises(AuthorizationDenied):
            make_credential(app).authorize()

    def test_expired(self):
        app = FakeApp(result={"error": "expired_token"})
        with pytest.raises(AuthorizationTimeout):
            make_credential(app).authorize()

    def test_network_failure(self):
        app = FakeApp(flow=requests.exceptions.ConnectionError("offline"))
        with pytest.raises(AuthorizationNetworkError):
            make_credential(app).authorize()

    def test_flow_not_started(self):
        app = FakeApp(flow={"error": "invalid_client", "error_description": "bad client"})
        with pytest.raises(AuthError):
            make_credential(app).authorize()

    @pytest.mark.parametrize("error", ["authorization_pending", "slow_down"])
    def test_timeout_ends_as_timeout(self, error):
        app = FakeApp(result={"error": error, "error_description": "still waiting"})
        with pytest.raises(AuthorizationTimeout):
            make_credential(app, timeout=5).authorize()
        assert app.device_flows[0]["expires_at"] <= time.time() + 5

    def test_prompt_logged_at_warning(self, caplog):
        caplog.set_level(logging.WARNING, logger="core.auth")
        app = FakeApp()
        DeviceCodeCredential("common", "client-id", SCOPES, msal.SerializableTokenCache(), app=app).authorize()
        assert ("core.auth", logging.WARNING, app.flow["message"]) in caplog.record_tuples


class TestGetToken:
    def test_returns_access_token(self):
        app = FakeApp(accounts=[{"username": "alice"}], silent=TOKEN)
        token = make_credential(app).get_token("https://graph.microsoft.com/.default")
        assert token.token == "access-1"
        assert token.expires_on > time.time()

    def test_without_cached_account(self):
        with pytest.raises(AuthError):
            make_credential(FakeApp()).get_token("https://graph.microsoft.com/.default")


class TestAcquireCredential:
    def test_client_secret_uses_app_only_credential(self, tmp_path):
        path = tmp_path / "token_cache.json"
        credential = acquire_credential("tenant", "client", SCOPES, path, client_secret="secret")
        assert isinstance(credential, ClientSecretCredential)
        assert not path.exists()

    def test_device_flow_saves_cache_once(self, tmp_path, monkeypatch):
        path = tmp_path / "token_cache.json"
        apps = []

        def fake_public_client(client_id, authority=None, token_cache=None):
            app = FakeApp(cache=token_cache)
            apps.append(app)
            return app

        monkeypatch.setattr(core.auth.msal, "PublicClientApplication", fake_public_client)

        credential = acquire_credential("tenant", "client", SCOPES, path, prompt=lambda message: None)

        assert isinstance(credential, DeviceCodeCredential)
        assert len(apps) == 1
        assert path.exists()
