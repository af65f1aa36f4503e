"""Tests for credential persistence and token refresh."""

import json
import stat
import time

import httpx
import pytest

from talent_agent.auth.client import AuthClient
from talent_agent.auth.models import AuthMethod, AuthToken, AuthTokenResponse, Credentials
from talent_agent.auth.store import (
    BackendSelector,
    CredentialStore,
    FileBackend,
    is_token_expired,
    to_epoch_ms,
)
from talent_agent.errors import AuthApiError


class FakeKeychain:
    def __init__(self, writable=True):
        self.data = None
        self.writable = writable
        self.deleted = False

    def write(self, data):
        if not self.writable:
            return False
        self.data = data
        return True

    def read(self):
        return self.data

    def delete(self):
        self.deleted = True
        self.data = None
        return True


def future(seconds=3600):
    return int(time.time()) + seconds


def creds(token="tok", expires_at=None, **kwargs):
    return Credentials(
        token=token,
        expires_at=expires_at if expires_at is not None else future(),
        auth_method=AuthMethod.EMAIL,
        email="ada@example.com",
        **kwargs,
    )


@pytest.fixture
def cred_path(tmp_path):
    return tmp_path / "talent" / "credentials.json"


@pytest.fixture
def file_store(cred_path):
    return CredentialStore(path=cred_path, selector=BackendSelector(probe=lambda: False))


class TestExpiry:
    def test_seconds_and_millis_agree(self):
        now = 1_700_000_000.0
        for offset in (-10, 10):
            seconds = int(now) + offset
            assert is_token_expired(seconds, now) == is_token_expired(seconds * 1000, now)

    def test_past_is_expired(self):
        assert is_token_expired(1_000, now=2_000)

    def test_boundary_counts_as_expired(self):
        assert is_token_expired(2_000, now=2_000)

    def test_future_is_valid(self):
        assert not is_token_expired(future())
        assert not is_token_expired(future() * 1000)

    def test_to_epoch_ms(self):
        assert to_epoch_ms(1_700_000_000) == 1_700_000_000_000
        assert to_epoch_ms(1_700_000_000_000) == 1_700_000_000_000


class TestBackendSelector:
    def test_probe_is_cached(self):
        calls = []

        def probe():
            calls.append(1)
            return True

        selector = BackendSelector(probe)
        assert selector.use_keychain
        assert selector.use_keychain
        assert len(calls) == 1

    def test_reset_reprobes(self):
        answers = iter([True, False])
        selector = BackendSelector(lambda: next(answers))
        assert selector.use_keychain is True
        selector.reset()
        assert selector.use_keychain is False


class TestFileBackend:
    def test_read_missing(self, cred_path):
        assert FileBackend(cred_path).read() is None

    def test_delete_missing(self, cred_path):
        assert FileBackend(cred_path).delete()


class TestFileStore:
    def test_load_empty(self, file_store):
        assert file_store.load() is None

    def test_round_trip(self, file_store):
        original = creds()
        file_store.save(original)
        loaded = file_store.load()
        assert loaded == original
        assert loaded.token == "tok"
        assert loaded.auth_method is AuthMethod.EMAIL
        assert loaded.email == "ada@example.com"

    def test_file_is_owner_only(self, file_store, cred_path):
        file_store.save(creds())
        assert stat.S_IMODE(cred_path.stat().st_mode) == 0o600

    def test_file_uses_camel_case(self, file_store, cred_path):
        file_store.save(creds())
        data = json.loads(cred_path.read_text())
        assert data["authMethod"] == "email"
        assert "expiresAt" in data
        assert "address" not in data

    def test_clear(self, file_store, cred_path):
        file_store.save(creds())
        file_store.clear()
        assert not cred_path.exists()
        assert file_store.load() is None

    def test_corrupt_file_ignored(self, file_store, cred_path):
        cred_path.parent.mkdir(parents=True)
        cred_path.write_text("{not json")
        assert file_store.load() is None


class TestKeychainTier:
    def test_keychain_preferred(self, cred_path):
        keychain = FakeKeychain()
        store = CredentialStore(cred_path, BackendSelector(lambda: True), keychain)
        store.save(creds())
        assert keychain.data is not None
        assert not cred_path.exists()
        assert store.load().token == "tok"

    def test_keychain_write_failure_falls_back_to_file(self, cred_path):
        store = CredentialStore(cred_path, BackendSelector(lambda: True), FakeKeychain(False))
        store.save(creds())
        assert cred_path.exists()
        assert store.load().token == "tok"

    def test_clear_removes_both(self, cred_path):
        keychain = FakeKeychain()
        store = CredentialStore(cred_path, BackendSelector(lambda: True), keychain)
        store.save(creds())
        store.clear()
        assert keychain.deleted

    def test_keychain_not_touched_when_unavailable(self, cred_path):
        keychain = FakeKeychain()
        store = CredentialStore(cred_path, BackendSelector(lambda: False), keychain)
        store.save(creds())
        store.clear()
        assert keychain.data is None
        assert not keychain.deleted


class TestGetValidToken:
    @pytest.mark.asyncio
    async def test_no_credentials(self, file_store):
        assert await file_store.get_valid_token() is None

    @pytest.mark.asyncio
    async def test_valid_token_returned(self, file_store):
        file_store.save(creds(expires_at=future() * 1000))
        assert await file_store.get_valid_token() == "tok"

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_and_saved(self, file_store):
        seen = []

        async def refresh(token):
            seen.append(token)
            return AuthTokenResponse(auth=AuthToken(token="new", expires_at=future()))

        file_store.refresh = refresh
        file_store.save(creds(expires_at=1))

        assert await file_store.get_valid_token() == "new"
        assert seen == ["tok"]
        saved = file_store.load()
        assert saved.token == "new"
        assert saved.email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_refresh_rejected_clears(self, file_store):
        async def refresh(token):
            raise AuthApiError("Token revoked", 401)

        file_store.refresh = refresh
        file_store.save(creds(expires_at=1))

        assert await file_store.get_valid_token() is None
        assert file_store.load() is None

    @pytest.mark.asyncio
    async def test_refresh_network_failure_clears(self, file_store):
        async def refresh(token):
            raise httpx.ConnectError("Connection refused")

        file_store.refresh = refresh
        file_store.save(creds(expires_at=1))

        assert await file_store.get_valid_token() is None
        assert file_store.load() is None

    @pytest.mark.asyncio
    async def test_expired_without_refresher_clears(self, file_store):
        file_store.save(creds(expires_at=1))
        assert await file_store.get_valid_token() is None
        assert file_store.load() is None

    @pytest.mark.asyncio
    async def test_refresh_with_non_json_body_clears(self, file_store):
        client = AuthClient(
            "https://api.test",
            "key",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>ok</html>")),
        )
        file_store.refresh = client.refresh_auth_token
        file_store.save(creds(expires_at=1))

        assert await file_store.get_valid_token() is None
        assert file_store.load() is None

    @pytest.mark.asyncio
    async def test_unexpected_refresh_error_clears(self, file_store):
        async def refresh(token):
            raise KeyError("auth")

        file_store.refresh = refresh
        file_store.save(creds(expires_at=1))

        assert await file_store.get_valid_token() is None
        assert file_store.load() is None
