"""
Row codec for the ``user_problem_data`` table.

Point-in-time columns are written as full ISO-8601 timestamps,
``last_daily_reset`` as ``YYYY-MM-DD``. Bookmarks are stored in a text column
as a bracketed, comma-joined list (``"[id1, id2]"``); only this module knows
that encoding.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from src.analytics.bookmarks import BookmarkSet
from src.analytics.models import (
    ProblemStats,
    parse_date,
    start_of_day,
    to_date_string,
    to_iso,
)


def encode_bookmarks(bookmarks: BookmarkSet) -> str:
    if not len(bookmarks):
        return ""
    return f"[{', '.join(bookmarks)}]"


def decode_bookmarks(raw: Any) -> BookmarkSet:
    if not raw:
        return BookmarkSet()
    if isinstance(raw, list):
        return BookmarkSet(str(item) for item in raw)
    cleaned = str(raw).replace("[", "").replace("]", "")
    return BookmarkSet(part.strip().strip('"') for part in cleaned.split(","))


def stats_from_row(row: dict[str, Any], user_id: str, now: datetime) -> ProblemStats:
    """Build the aggregate from a fetched row; missing fields default to zero."""
    data = dict(row)
    data["user_id"] = user_id
    data["problems_bookmarked"] = []
    stats = ProblemStats.from_dict(data)
    stats.problems_bookmarked = decode_bookmarks(row.get("problems_bookmarked"))
    if stats.last_daily_reset is None:
        stats.last_daily_reset = start_of_day(now)
    return stats


def stats_to_row(stats: ProblemStats, now: datetime) -> dict[str, Any]:
    """Partial-update payload carrying every aggregate field."""
    data = stats.to_dict()
    return {
        "total_problems_solved": stats.total_problems_solved,
        "daily_problems_solved": stats.daily_problems_solved,
        "weekly_problems_solved": stats.weekly_problems_solved,
        "monthly_problems_solved": stats.monthly_problems_solved,
        "total_attempts": stats.total_attempts,
        "correct_attempts": stats.correct_attempts,
        "average_accuracy": stats.average_accuracy,
        "last_problem_solved": to_iso(parse_date(stats.last_problem_solved)),
        "last_daily_reset": to_date_string(parse_date(stats.last_daily_reset)),
        "problems_by_topic": data["problems_by_topic"],
        "difficulty_stats": data["difficulty_stats"],
        "problem_collections": stats.problem_collections,
        "problems_bookmarked": encode_bookmarks(stats.problems_bookmarked),
        "problem_timings_record": data["problem_timings_record"],
        "updated_at": to_iso(now),
    }


def new_stats_row(user_id: str, now: datetime) -> dict[str, Any]:
    """Insert payload for a user with no row yet."""
    return {
        "user_id": user_id,
        "total_problems_solved": 0,
        "daily_problems_solved": 0,
        "weekly_problems_solved": 0,
        "monthly_problems_solved": 0,
        "total_attempts": 0,
        "correct_attempts": 0,
        "average_accuracy": 0.0,
        "last_daily_reset": to_date_string(start_of_day(now)),
        "problems_by_topic": {},
        "difficulty_stats": {},
        "problem_collections": {},
        "problems_bookmarked": "",
        "problem_timings_record": {},
        "created_at": to_iso(now),
        "updated_at": to_iso(now),
    }
