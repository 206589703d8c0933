"""
Supabase REST client for the ``user_problem_data`` table.

Handles the session-token exchange, fetch-by-user, row creation and the
partial update used by every flush.

Usage:
    async with SupabaseProblemDataClient.from_settings(user, settings) as remote:
        stats = await remote.load_stats(user.uid)
        await remote.save_stats(stats)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

import httpx
from loguru import logger

from src.analytics.models import ProblemStats
from src.errors import RemoteStoreError
from src.remote.auth import SESSION_AUTH_PATH, IdentityUser, SessionTokenManager
from src.remote.problem_data import new_stats_row, stats_from_row, stats_to_row

if TYPE_CHECKING:
    from config import Settings

PROBLEM_DATA_TABLE = "user_problem_data"


class ProblemDataStore(Protocol):
    """Remote side of the sync controller."""

    async def load_stats(self, user_id: str) -> Optional[ProblemStats]: ...

    async def create_stats(self, user_id: str) -> ProblemStats: ...

    async def save_stats(self, stats: ProblemStats) -> None: ...

    def clear_session(self) -> None: ...


class SupabaseProblemDataClient:
    """HTTP client for the problem-data table."""

    def __init__(
        self,
        user: IdentityUser,
        supabase_url: str,
        anon_key: str,
        table: str = PROBLEM_DATA_TABLE,
        session_auth_path: str = SESSION_AUTH_PATH,
        timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.user = user
        self.anon_key = anon_key
        self.table = table
        self._clock = clock
        self.client = httpx.AsyncClient(
            base_url=supabase_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )
        self.tokens = SessionTokenManager(user, self.client, session_auth_path, clock=clock)

    @classmethod
    def from_settings(cls, user: IdentityUser, settings: Settings) -> SupabaseProblemDataClient:
        return cls(
            user,
            supabase_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            table=settings.problem_data_table,
            session_auth_path=settings.session_auth_path,
            timeout_seconds=settings.http_timeout_seconds,
        )

    async def __aenter__(self) -> SupabaseProblemDataClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    def clear_session(self) -> None:
        self.tokens.clear()

    @property
    def _table_path(self) -> str:
        return f"/rest/v1/{self.table}"

    async def _headers(self, **extra: str) -> dict[str, str]:
        token = await self.tokens.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "apikey": self.anon_key,
            "Content-Type": "application/json",
            **extra,
        }

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.status_code in (200, 201, 204):
            return
        if response.status_code == 401:
            # Session token rejected; exchange a fresh one next time
            self.tokens.clear()
        raise RemoteStoreError(
            f"Failed to {action}: {response.status_code} {response.reason_phrase} - {response.text}",
            status_code=response.status_code,
        )

    # =========================================================================
    # Rows
    # =========================================================================

    async def fetch_problem_stats(self, user_id: str) -> Optional[dict[str, Any]]:
        """Raw row for ``user_id``, or None when the user has no row yet."""
        headers = await self._headers()
        try:
            response = await self.client.get(
                self._table_path,
                params={"user_id": f"eq.{user_id}"},
                headers=headers,
            )
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Connection error loading problem stats: {e}") from e

        self._check(response, "load problem stats")
        rows = response.json()
        return rows[0] if rows else None

    async def create_problem_stats(self, row: dict[str, Any]) -> None:
        headers = await self._headers(Prefer="return=representation")
        try:
            response = await self.client.post(self._table_path, json=row, headers=headers)
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Connection error creating problem stats: {e}") from e

        self._check(response, "create problem stats")

    async def update_problem_stats(self, user_id: str, row: dict[str, Any]) -> None:
        headers = await self._headers()
        try:
            response = await self.client.patch(
                self._table_path,
                params={"user_id": f"eq.{user_id}"},
                json=row,
                headers=headers,
            )
        except httpx.RequestError as e:
            raise RemoteStoreError(f"Connection error updating problem stats: {e}") from e

        self._check(response, "update problem stats")

    # =========================================================================
    # Aggregate
    # =========================================================================

    async def load_stats(self, user_id: str) -> Optional[ProblemStats]:
        row = await self.fetch_problem_stats(user_id)
        if row is None:
            return None
        logger.info("Problem stats loaded successfully from database")
        return stats_from_row(row, user_id, self._clock())

    async def create_stats(self, user_id: str) -> ProblemStats:
        now = self._clock()
        row = new_stats_row(user_id, now)
        await self.create_problem_stats(row)
        logger.info("Created new problem stats record for {}", user_id)
        return stats_from_row(row, user_id, now)

    async def save_stats(self, stats: ProblemStats) -> None:
        await self.update_problem_stats(stats.user_id, stats_to_row(stats, self._clock()))

    async def health_check(self) -> bool:
        """Check if the Supabase REST endpoint is reachable."""
        try:
            response = await self.client.get(
                "/rest/v1/", headers={"apikey": self.anon_key}, timeout=5.0
            )
            return response.status_code < 500
        except httpx.HTTPError:
            return False
