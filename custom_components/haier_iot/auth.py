"""Credential management for the Haier IoT cloud.

Turns a username/password into an access token, keeps it on disk between
restarts and signs outbound requests.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import random
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import voluptuous as vol

from .const import APP_ID, APP_KEY, CLIENT_ID_FILE, TOKEN_DIR
from .exceptions import HaierApiClientError, HaierAuthError
from .models import TokenInfo
from .schema import TOKEN_INFO_SCHEMA
from .store import escape_key

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)

SEQUENCE_SUFFIX_RANGE = 1_000_000


def now_ms() -> int:
    """Return the current time as a millisecond epoch timestamp."""
    return int(time.time() * 1000)


def generate_sequence_id(timestamp: int | None = None) -> str:
    """Build a request sequence id from a millisecond timestamp.

    The id is the local ``YYYYMMDDHHMMSS`` of the timestamp followed by a
    random suffix.
    """
    if timestamp is None:
        timestamp = now_ms()
    moment = datetime.fromtimestamp(timestamp / 1000)  # noqa: DTZ006
    suffix = random.randrange(SEQUENCE_SUFFIX_RANGE)  # noqa: S311
    return f"{moment:%Y%m%d%H%M%S}{suffix}"


def sign_request(url: str, body: str, timestamp: int) -> str:
    """Compute the request signature.

    Args:
        url: Request target, path plus query string (``/path?query``).
        body: Serialised request body, empty for requests without one.
        timestamp: Millisecond timestamp sent in the ``timestamp`` header.

    Returns:
        Hex encoded SHA-256 digest.

    """
    sign_str = f"{url}{body}{APP_ID}{APP_KEY}{timestamp}"
    return hashlib.sha256(sign_str.encode("utf-8")).hexdigest()


class HaierAuth:
    """Owns the login lifecycle and the on-disk credential files.

    Tokens live in ``<storage_dir>/token/<username>.json`` and the client
    identity in ``<storage_dir>/client-id``.
    """

    def __init__(
        self,
        storage_dir: Path | str,
        username: str,
        password: str,
        login: Callable[[], Awaitable[TokenInfo]],
    ) -> None:
        """Initialize the credential manager.

        Args:
            storage_dir: Directory for token and client id files.
            username: Account username.
            password: Account password.
            login: Coroutine function performing the network login.

        """
        self._storage_dir = Path(storage_dir)
        self.username = username
        self.password = password
        self._login = login
        self._client_id: str | None = None
        self._token_info: TokenInfo | None = None
        self._token_loaded = False
        self._refresh_task: asyncio.Task[str] | None = None

    @property
    def storage_dir(self) -> Path:
        """Return the storage directory, creating it on demand."""
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        return self._storage_dir

    @property
    def token_path(self) -> Path:
        """Return the token file for the configured username."""
        token_dir = self.storage_dir / TOKEN_DIR
        token_dir.mkdir(parents=True, exist_ok=True)
        return token_dir / f"{escape_key(self.username)}.json"

    @property
    def client_id(self) -> str:
        """Return the durable client identity, creating it on first use."""
        if self._client_id is not None:
            return self._client_id
        path = self.storage_dir / CLIENT_ID_FILE
        if path.is_file():
            client_id = path.read_text(encoding="utf-8").strip()
            if client_id:
                self._client_id = client_id
                return client_id
        client_id = str(uuid.uuid4())
        path.write_text(client_id, encoding="utf-8")
        self._client_id = client_id
        # Tokens are issued for a client id, so a new id invalidates them.
        self._token_info = None
        self.token_path.unlink(missing_ok=True)
        _LOGGER.debug("Created new client id in %s", path)
        return client_id

    @property
    def token_info(self) -> TokenInfo | None:
        """Return the stored credential if it has not expired."""
        if not self._token_loaded:
            self._token_info = self._read_token_file()
            self._token_loaded = True
        if self._token_info is not None and not self._token_info.is_expired(
            now_ms()
        ):
            return self._token_info
        return None

    @token_info.setter
    def token_info(self, token_info: TokenInfo) -> None:
        self.token_path.write_text(json.dumps(token_info.to_dict()), encoding="utf-8")
        self._token_info = token_info
        self._token_loaded = True

    def _read_token_file(self) -> TokenInfo | None:
        path = self.token_path
        if not path.is_file():
            return None
        try:
            data = TOKEN_INFO_SCHEMA(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, vol.Invalid):
            _LOGGER.warning("Ignoring unreadable token file %s", path)
            return None
        return TokenInfo.from_dict(data)

    async def async_login(self) -> TokenInfo:
        """Log in, persist the new credential and return it.

        Raises:
            HaierAuthError: If credentials are missing or the login fails.

        """
        if not self.username or not self.password:
            error_msg = "Username or password is empty"
            raise HaierAuthError(error_msg)

        try:
            token_info = await self._login()
        except HaierAuthError:
            raise
        except (HaierApiClientError, httpx.HTTPError) as err:
            error_msg = f"Login failed: {err}"
            raise HaierAuthError(error_msg) from err

        self.token_info = token_info
        _LOGGER.info("Logged in to Haier IoT as %s", self.username)
        return token_info

    async def async_get_access_token(self) -> str:
        """Return a valid access token, logging in when needed.

        Concurrent callers during a login all wait for the same attempt.

        Raises:
            HaierAuthError: If the login fails; every waiter sees the error.

        """
        if self._refresh_task is not None:
            return await asyncio.shield(self._refresh_task)

        token_info = self.token_info
        if token_info is not None:
            return token_info.uhome_access_token

        self._refresh_task = asyncio.ensure_future(self._async_refresh_token())
        return await asyncio.shield(self._refresh_task)

    async def _async_refresh_token(self) -> str:
        try:
            token_info = await self.async_login()
        except HaierAuthError:
            _LOGGER.exception("Failed to obtain Haier IoT access token")
            raise
        finally:
            self._refresh_task = None
        return token_info.uhome_access_token
