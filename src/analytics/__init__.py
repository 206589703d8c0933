"""
Practice analytics: the per-user statistics aggregate and its queries.

Components:
- models: ProblemAttempt, ProblemStats and the rollup data classes
- manager: ProblemAnalyticsManager (aggregate + pending queue)
- bookmarks: BookmarkSet and collection helpers
- xp: XP rewards for solved problems
"""

from .bookmarks import BookmarkSet, remove_problem_from_collections
from .manager import ProblemAnalyticsManager, SessionHandle
from .models import (
    DailyProblemData,
    DailyTimingRecord,
    ProblemAttempt,
    ProblemStats,
    TimingInsights,
    TopicStats,
)

__all__ = [
    "BookmarkSet",
    "remove_problem_from_collections",
    "ProblemAnalyticsManager",
    "SessionHandle",
    "DailyProblemData",
    "DailyTimingRecord",
    "ProblemAttempt",
    "ProblemStats",
    "TimingInsights",
    "TopicStats",
]
