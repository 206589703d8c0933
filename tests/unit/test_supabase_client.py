"""
Unit tests for the Supabase problem-data client, the session-token bridge
and the row codec.
"""

from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response

from src.analytics.bookmarks import BookmarkSet
from src.analytics.models import ProblemStats, TopicStats
from src.errors import AuthenticationError, RemoteStoreError
from src.remote.auth import StaticTokenUser
from src.remote.problem_data import (
    decode_bookmarks,
    encode_bookmarks,
    new_stats_row,
    stats_from_row,
    stats_to_row,
)
from src.remote.supabase_client import SupabaseProblemDataClient

BASE_URL = "https://test.supabase.co"


def make_response(method, url, status_code=200, json=None):
    return Response(status_code, json=json, request=Request(method, f"{BASE_URL}{url}"))


@pytest.fixture
def sample_row():
    """Row as returned by PostgREST."""
    return {
        "user_id": "user-123",
        "total_problems_solved": 12,
        "daily_problems_solved": 2,
        "weekly_problems_solved": 5,
        "monthly_problems_solved": 12,
        "total_attempts": 16,
        "correct_attempts": 12,
        "average_accuracy": 75.0,
        "last_problem_solved": "2024-03-15T13:05:00Z",
        "last_daily_reset": "2024-03-15",
        "problems_by_topic": {
            "Algebra": {
                "solved": 12,
                "attempts": 16,
                "accuracy": 75.0,
                "difficulty_breakdown": {"2.0": 12},
                "sources": {"AMC 10": {"solved": 12, "attempts": 16, "accuracy": 75.0}},
            }
        },
        "difficulty_stats": {"2.0": {"solved": 12, "attempts": 16, "accuracy": 75.0}},
        "problem_timings_record": {},
        "problem_collections": [],
        "problems_bookmarked": "[amc10-2022-a-3, amc12-2021-b-17]",
    }


@pytest_asyncio.fixture
async def client(user, clock):
    """Client for the test user."""
    client = SupabaseProblemDataClient(user, BASE_URL, "anon-key", clock=clock)
    yield client
    await client.close()


@pytest.fixture
def session_auth(client, monkeypatch):
    """Session-auth endpoint that records how often it was hit."""
    calls = []

    async def mock_post(url, **kwargs):
        calls.append((url, kwargs))
        return make_response("POST", url, json={"access_token": f"session-token-{len(calls)}"})

    monkeypatch.setattr(client.client, "post", mock_post)
    return calls


class TestBookmarkCodec:
    """Tests for the bracketed bookmark column."""

    def test_encode(self):
        assert encode_bookmarks(BookmarkSet(["p1", "p2"])) == "[p1, p2]"
        assert encode_bookmarks(BookmarkSet()) == ""

    def test_decode_string(self):
        assert decode_bookmarks("[p1, p2]").to_list() == ["p1", "p2"]

    def test_decode_quoted_and_duplicated(self):
        assert decode_bookmarks('["p1", "p2", "p1"]').to_list() == ["p1", "p2"]

    def test_decode_empty_values(self):
        assert len(decode_bookmarks(None)) == 0
        assert len(decode_bookmarks("")) == 0
        assert len(decode_bookmarks("[]")) == 0

    def test_decode_list(self):
        assert decode_bookmarks(["p1", "p2"]).to_list() == ["p1", "p2"]


class TestRowCodec:
    """Tests for converting between rows and the aggregate."""

    def test_stats_from_row(self, sample_row, clock):
        stats = stats_from_row(sample_row, "user-123", clock())

        assert stats.total_problems_solved == 12
        assert stats.last_daily_reset == datetime(2024, 3, 15)
        assert stats.problems_by_topic["Algebra"].sources["AMC 10"].attempts == 16
        assert stats.problems_bookmarked.to_list() == ["amc10-2022-a-3", "amc12-2021-b-17"]

    def test_missing_reset_defaults_to_today(self, clock):
        stats = stats_from_row({"total_attempts": 1}, "user-123", clock())

        assert stats.user_id == "user-123"
        assert stats.last_daily_reset == datetime(2024, 3, 15)

    def test_stats_to_row_formats(self, clock):
        stats = ProblemStats(
            user_id="user-123",
            last_daily_reset=datetime(2024, 3, 15),
            last_problem_solved=datetime(2024, 3, 15, 13, 5),
            problems_by_topic={"Algebra": TopicStats(solved=1, attempts=1, accuracy=100.0)},
        )
        stats.problems_bookmarked.add("p9")

        row = stats_to_row(stats, clock())

        assert row["last_daily_reset"] == "2024-03-15"
        assert row["last_problem_solved"].startswith("2024-03-15T13:05:00")
        assert row["problems_bookmarked"] == "[p9]"
        assert row["problems_by_topic"]["Algebra"]["solved"] == 1
        assert "user_id" not in row
        assert "updated_at" in row

    def test_new_row_is_zeroed(self, clock):
        row = new_stats_row("user-123", clock())

        assert row["user_id"] == "user-123"
        assert row["total_attempts"] == 0
        assert row["last_daily_reset"] == "2024-03-15"
        assert row["problems_bookmarked"] == ""


class TestSessionTokenManager:
    """Tests for the identity-token exchange."""

    @pytest.mark.asyncio
    async def test_exchange_and_cache(self, client, session_auth):
        first = await client.tokens.get_token()
        second = await client.tokens.get_token()

        assert first == second == "session-token-1"
        assert len(session_auth) == 1
        url, kwargs = session_auth[0]
        assert url == "/functions/v1/session-auth"
        assert kwargs["json"] == {"idToken": "firebase-id-token"}

    @pytest.mark.asyncio
    async def test_refresh_before_expiry(self, client, session_auth, clock):
        await client.tokens.get_token()

        clock.advance(minutes=54)
        assert await client.tokens.get_token() == "session-token-1"

        clock.advance(minutes=2)
        assert await client.tokens.get_token() == "session-token-2"

    @pytest.mark.asyncio
    async def test_clear_forces_new_exchange(self, client, session_auth):
        await client.tokens.get_token()
        client.clear_session()
        await client.tokens.get_token()

        assert len(session_auth) == 2

    @pytest.mark.asyncio
    async def test_rejected_exchange(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return make_response("POST", url, 401, json={"error": "Invalid Firebase token"})

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(AuthenticationError, match="Invalid Firebase token"):
            await client.tokens.get_token()

    @pytest.mark.asyncio
    async def test_exchange_without_access_token(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return make_response("POST", url, json={})

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(AuthenticationError):
            await client.tokens.get_token()

    @pytest.mark.asyncio
    async def test_no_identity_token(self, clock):
        client = SupabaseProblemDataClient(StaticTokenUser("user-123", ""), BASE_URL, "anon-key", clock=clock)
        try:
            with pytest.raises(AuthenticationError):
                await client.tokens.get_token()
        finally:
            await client.close()


class TestSupabaseProblemDataClient:
    """Tests for the table operations."""

    @pytest.mark.asyncio
    async def test_load_stats(self, client, session_auth, sample_row, monkeypatch):
        seen = {}

        async def mock_get(url, **kwargs):
            seen.update(kwargs, url=url)
            return make_response("GET", url, json=[sample_row])

        monkeypatch.setattr(client.client, "get", mock_get)

        stats = await client.load_stats("user-123")

        assert stats.total_problems_solved == 12
        assert seen["url"] == "/rest/v1/user_problem_data"
        assert seen["params"] == {"user_id": "eq.user-123"}
        assert seen["headers"]["Authorization"] == "Bearer session-token-1"
        assert seen["headers"]["apikey"] == "anon-key"

    @pytest.mark.asyncio
    async def test_load_stats_without_row(self, client, session_auth, monkeypatch):
        async def mock_get(url, **kwargs):
            return make_response("GET", url, json=[])

        monkeypatch.setattr(client.client, "get", mock_get)

        assert await client.load_stats("user-123") is None

    @pytest.mark.asyncio
    async def test_load_error_propagates(self, client, session_auth, monkeypatch):
        async def mock_get(url, **kwargs):
            return make_response("GET", url, 500, json={"message": "boom"})

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(RemoteStoreError) as exc_info:
            await client.load_stats("user-123")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unauthorized_clears_session_token(self, client, session_auth, monkeypatch):
        async def mock_get(url, **kwargs):
            return make_response("GET", url, 401, json={"message": "JWT expired"})

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(RemoteStoreError):
            await client.load_stats("user-123")

        await client.tokens.get_token()
        assert len(session_auth) == 2

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self, client, session_auth, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectError("Connection refused")

        monkeypatch.setattr(client.client, "get", mock_get)

        with pytest.raises(RemoteStoreError, match="Connection error"):
            await client.load_stats("user-123")

    @pytest.mark.asyncio
    async def test_create_stats(self, client, monkeypatch):
        inserted = []

        async def mock_post(url, **kwargs):
            if url == "/functions/v1/session-auth":
                return make_response("POST", url, json={"access_token": "session-token"})
            inserted.append(kwargs)
            return make_response("POST", url, 201, json=[kwargs["json"]])

        monkeypatch.setattr(client.client, "post", mock_post)

        stats = await client.create_stats("user-123")

        assert stats.user_id == "user-123"
        assert stats.total_attempts == 0
        assert stats.last_daily_reset == datetime(2024, 3, 15)
        assert inserted[0]["headers"]["Prefer"] == "return=representation"
        assert inserted[0]["json"]["user_id"] == "user-123"

    @pytest.mark.asyncio
    async def test_save_stats(self, client, session_auth, monkeypatch):
        patches = []

        async def mock_patch(url, **kwargs):
            patches.append(kwargs)
            return make_response("PATCH", url, 204)

        monkeypatch.setattr(client.client, "patch", mock_patch)

        stats = ProblemStats(
            user_id="user-123",
            total_problems_solved=5,
            last_daily_reset=datetime(2024, 3, 15),
        )
        await client.save_stats(stats)

        assert patches[0]["params"] == {"user_id": "eq.user-123"}
        assert patches[0]["json"]["total_problems_solved"] == 5
        assert patches[0]["json"]["last_daily_reset"] == "2024-03-15"

    @pytest.mark.asyncio
    async def test_retry_after_failed_save_matches_single_save(self, client, session_auth, monkeypatch, clock):
        """Full counters are sent, so a retried flush cannot double-count."""
        remote_row = {}
        attempts = 0

        async def mock_patch(url, **kwargs):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ConnectError("Network unreachable")
            remote_row.update(kwargs["json"])
            return make_response("PATCH", url, 204)

        monkeypatch.setattr(client.client, "patch", mock_patch)

        stats = ProblemStats(
            user_id="user-123",
            total_attempts=3,
            correct_attempts=2,
            total_problems_solved=2,
            last_daily_reset=datetime(2024, 3, 15),
        )

        with pytest.raises(RemoteStoreError):
            await client.save_stats(stats)
        await client.save_stats(stats)

        assert attempts == 2
        assert remote_row == stats_to_row(stats, clock())
        assert stats_from_row(remote_row, "user-123", clock()) == stats

    @pytest.mark.asyncio
    async def test_health_check(self, client, monkeypatch):
        async def mock_get(url, **kwargs):
            raise ConnectError("Connection refused")

        monkeypatch.setattr(client.client, "get", mock_get)

        assert await client.health_check() is False
