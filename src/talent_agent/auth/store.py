"""Token persistence with a keychain-or-file backend.

Two storage tiers:

1. macOS Keychain via the ``security`` tool, encrypted at rest and unlocked
   by the login session.
2. ``~/.talent-agent/credentials.json`` written with ``0o600`` permissions,
   used when the keychain is unavailable (Linux, CI) or a keychain write fails.

Which tier is preferred is decided once by a ``BackendSelector`` and cached.
"""

import logging
import os
import shutil
import subprocess
import sys
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import ValidationError

from talent_agent.auth.models import AuthTokenResponse, Credentials
from talent_agent.config import CREDENTIALS_PATH
from talent_agent.errors import CredentialStoreError

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE = "talent-agent"
KEYCHAIN_ACCOUNT = "default"

# Timestamps above this are milliseconds, below it seconds.
MS_THRESHOLD = 1_000_000_000_000

Refresher = Callable[[str], Awaitable[AuthTokenResponse]]


def to_epoch_ms(expires_at: int | float) -> float:
    return expires_at if expires_at > MS_THRESHOLD else expires_at * 1000


def is_token_expired(expires_at: int | float, now: float | None = None) -> bool:
    """Return True once ``expires_at`` (seconds or milliseconds) has passed."""
    now_ms = (time.time() if now is None else now) * 1000
    return now_ms >= to_epoch_ms(expires_at)


def keychain_available() -> bool:
    return sys.platform == "darwin" and shutil.which("security") is not None


class BackendSelector:
    """Decides once per process whether the keychain tier is used."""

    def __init__(self, probe: Callable[[], bool] = keychain_available):
        self._probe = probe
        self._use_keychain: bool | None = None

    @property
    def use_keychain(self) -> bool:
        if self._use_keychain is None:
            self._use_keychain = self._probe()
            logger.debug("Keychain backend available: %s", self._use_keychain)
        return self._use_keychain

    def reset(self) -> None:
        """Forget the cached probe result (test isolation)."""
        self._use_keychain = None


class KeychainBackend:
    """macOS generic-password storage through the ``security`` CLI."""

    def __init__(self, service: str = KEYCHAIN_SERVICE, account: str = KEYCHAIN_ACCOUNT):
        self.service = service
        self.account = account

    def _run(self, *args: str) -> subprocess.CompletedProcess | None:
        try:
            return subprocess.run(
                ["security", *args, "-s", self.service, "-a", self.account],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("security %s failed: %s", args[0], exc)
            return None

    def write(self, data: str) -> bool:
        self._run("delete-generic-password")
        result = self._run("add-generic-password", "-U", "-w", data)
        return result is not None and result.returncode == 0

    def read(self) -> str | None:
        result = self._run("find-generic-password", "-w")
        if result is None or result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def delete(self) -> bool:
        result = self._run("delete-generic-password")
        return result is not None and result.returncode == 0


class FileBackend:
    """Credentials JSON file readable only by the owner."""

    def __init__(self, path: Path):
        self.path = path

    def write(self, data: str) -> bool:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.chmod(self.path, 0o600)
            return True
        except OSError as exc:
            logger.warning("Could not write credentials file %s: %s", self.path, exc)
            return False

    def read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read credentials file %s: %s", self.path, exc)
            return None

    def delete(self) -> bool:
        try:
            self.path.unlink(missing_ok=True)
            return True
        except OSError as exc:
            logger.warning("Could not remove credentials file %s: %s", self.path, exc)
            return False


class CredentialStore:
    """Load, save and refresh the stored bearer token."""

    def __init__(
        self,
        path: Path | None = None,
        selector: BackendSelector | None = None,
        keychain: KeychainBackend | None = None,
        refresh: Refresher | None = None,
    ):
        self.file = FileBackend(path or CREDENTIALS_PATH)
        self.selector = selector or BackendSelector()
        self.keychain = keychain or KeychainBackend()
        self.refresh = refresh

    def save(self, creds: Credentials) -> None:
        """Persist ``creds``; keychain preferred, file as fallback."""
        data = creds.to_json()
        if self.selector.use_keychain and self.keychain.write(data):
            return
        if not self.file.write(data):
            raise CredentialStoreError("Failed to save credentials to both keychain and file.")

    def load(self) -> Credentials | None:
        raw = None
        if self.selector.use_keychain:
            raw = self.keychain.read()
        if not raw:
            raw = self.file.read()
        if not raw:
            return None
        try:
            return Credentials.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored credentials are unreadable; ignoring them")
            return None

    def clear(self) -> None:
        if self.selector.use_keychain:
            self.keychain.delete()
        self.file.delete()

    async def get_valid_token(self) -> str | None:
        """Return a usable token, refreshing an expired one.

        Any refresh failure (rejected token, network error, malformed
        response, failed save) clears the stored credentials and returns
        None, so a stale token is never handed out.
        """
        creds = self.load()
        if creds is None:
            return None

        if not is_token_expired(creds.expires_at):
            return creds.token

        if self.refresh is None:
            logger.info("Token expired and no refresh endpoint configured")
            self.clear()
            return None

        try:
            refreshed = await self.refresh(creds.token)
            updated = creds.model_copy(
                update={
                    "token": refreshed.auth.token,
                    "expires_at": refreshed.auth.expires_at,
                }
            )
            self.save(updated)
        except Exception as exc:
            logger.info("Token refresh failed, clearing credentials: %s", exc)
            self.clear()
            return None

        return updated.token
