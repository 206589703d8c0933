"""
Identity bridge: Firebase ID token -> Supabase session token.

The session-auth edge function accepts a freshly minted Firebase ID token and
returns a Supabase ``access_token``. Tokens are cached in memory only and
refreshed five minutes before their assumed 60 minute lifetime runs out.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Protocol

import httpx
from loguru import logger

from src.errors import AuthenticationError, RemoteStoreError

SESSION_AUTH_PATH = "/functions/v1/session-auth"
TOKEN_LIFETIME = timedelta(minutes=60)
REFRESH_BUFFER = timedelta(minutes=5)


class IdentityUser(Protocol):
    """The signed-in user as seen by this library."""

    uid: str

    async def get_id_token(self, force_refresh: bool = False) -> str: ...


@dataclass
class StaticTokenUser:
    """Identity with a pre-issued ID token (CLI use, tests)."""

    uid: str
    id_token: str

    async def get_id_token(self, force_refresh: bool = False) -> str:
        if not self.id_token:
            raise AuthenticationError(f"No identity token available for {self.uid}")
        return self.id_token


class SessionTokenManager:
    """Exchanges identity tokens for backend session tokens, with caching."""

    def __init__(
        self,
        user: IdentityUser,
        client: httpx.AsyncClient,
        session_auth_path: str = SESSION_AUTH_PATH,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.user = user
        self.client = client
        self.session_auth_path = session_auth_path
        self._clock = clock
        self._token: str | None = None
        self._expires_at: datetime | None = None
        self._lock = asyncio.Lock()

    def _is_valid(self) -> bool:
        return (
            self._token is not None
            and self._expires_at is not None
            and self._clock() < self._expires_at - REFRESH_BUFFER
        )

    async def get_token(self) -> str:
        """Cached session token, exchanging a new one when close to expiry."""
        if self._is_valid():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            if self._is_valid():
                return self._token  # type: ignore[return-value]
            return await self._exchange()

    async def _exchange(self) -> str:
        try:
            id_token = await self.user.get_id_token(force_refresh=True)
        except AuthenticationError:
            self.clear()
            raise
        except Exception as e:
            self.clear()
            raise AuthenticationError(f"Could not refresh identity token: {e}") from e

        logger.debug("Exchanging identity token for session token ({})", self.user.uid)
        try:
            response = await self.client.post(
                self.session_auth_path,
                json={"idToken": id_token},
                headers={"Content-Type": "application/json"},
            )
        except httpx.RequestError as e:
            self.clear()
            raise RemoteStoreError(f"Session token exchange failed: {e}") from e

        if response.status_code != 200:
            self.clear()
            raise AuthenticationError(f"Token refresh failed: {_error_detail(response)}")

        token = response.json().get("access_token")
        if not token:
            self.clear()
            raise AuthenticationError("Token refresh failed: no access_token in response")

        self._token = token
        self._expires_at = self._clock() + TOKEN_LIFETIME
        logger.debug("Session token refreshed and cached")
        return token

    def clear(self) -> None:
        """Forget the cached token (sign-out, rejected token)."""
        self._token = None
        self._expires_at = None


def _error_detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("error", response.reason_phrase))
    except ValueError:
        return response.text or response.reason_phrase
