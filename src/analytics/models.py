"""
Data classes for problem-practice analytics.

The aggregate (``ProblemStats``) mirrors the ``user_problem_data`` row one to
one. ``to_dict``/``from_dict`` produce the JSON shape used by the emergency
snapshot; date fields travel as ISO-8601 strings.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

from src.analytics.bookmarks import BookmarkSet

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# =============================================================================
# Date helpers
# =============================================================================


def start_of_day(moment: datetime) -> datetime:
    """Local midnight of the day containing ``moment``."""
    return datetime(moment.year, moment.month, moment.day)


def date_key(moment: datetime | date) -> str:
    """YYYY-MM-DD key for the local calendar day."""
    return moment.strftime("%Y-%m-%d")


def parse_date(value: Any) -> datetime | None:
    """
    Parse a stored date into a naive local datetime.

    Date-only strings are read as local midnight. Aware timestamps are
    converted to local time. Anything unparseable yields None.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if _DATE_ONLY.match(text):
                parsed = date.fromisoformat(text)
                return datetime(parsed.year, parsed.month, parsed.day)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def to_iso(moment: datetime | None) -> str | None:
    """Full ISO-8601 timestamp with the local UTC offset."""
    if moment is None:
        return None
    return moment.astimezone().isoformat()


def to_date_string(moment: datetime | None) -> str | None:
    """YYYY-MM-DD for date-only columns."""
    if moment is None:
        return None
    return date_key(moment)


def _accuracy(solved: int, attempts: int) -> float:
    return (solved / attempts) * 100 if attempts > 0 else 0.0


def _mapping(value: Any, name: str) -> dict[str, Any]:
    """Nested rollup object; missing means empty, any other shape is rejected."""
    if not value:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be an object, got {type(value).__name__}")
    return value


def _bookmark_ids(value: Any) -> list[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise TypeError(f"problems_bookmarked must be a list, got {type(value).__name__}")
    return [str(problem_id) for problem_id in value]


# =============================================================================
# Attempts
# =============================================================================


@dataclass(frozen=True)
class ProblemAttempt:
    """One submitted answer to one problem."""

    problem_id: str
    topic: str
    difficulty: float
    source: str
    is_correct: bool
    time_spent: float  # seconds
    answer_given: str = ""
    xp_earned: int | None = None
    attempted_at: datetime | None = None

    @property
    def difficulty_key(self) -> str:
        """Difficulty bucket, rounded to one decimal."""
        return f"{float(self.difficulty):.1f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "problemId": self.problem_id,
            "topic": self.topic,
            "difficulty": self.difficulty,
            "source": self.source,
            "isCorrect": self.is_correct,
            "timeSpent": self.time_spent,
            "answerGiven": self.answer_given,
            "xpEarned": self.xp_earned,
            "attemptedAt": to_iso(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProblemAttempt:
        return cls(
            problem_id=str(data["problemId"]),
            topic=data.get("topic", ""),
            difficulty=float(data.get("difficulty", 0)),
            source=data.get("source", ""),
            is_correct=bool(data.get("isCorrect", False)),
            time_spent=data.get("timeSpent", 0),
            answer_given=data.get("answerGiven", ""),
            xp_earned=data.get("xpEarned"),
            attempted_at=parse_date(data.get("attemptedAt")),
        )


# =============================================================================
# Rollups
# =============================================================================


@dataclass
class SourceStats:
    solved: int = 0
    attempts: int = 0
    accuracy: float = 0.0

    def record(self, is_correct: bool) -> None:
        self.attempts += 1
        if is_correct:
            self.solved += 1
        self.accuracy = _accuracy(self.solved, self.attempts)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceStats:
        return cls(
            solved=int(data.get("solved", 0)),
            attempts=int(data.get("attempts", 0)),
            accuracy=float(data.get("accuracy", 0)),
        )


# Difficulty buckets share the shape of source rollups.
DifficultyStats = SourceStats


@dataclass
class TopicStats:
    solved: int = 0
    attempts: int = 0
    accuracy: float = 0.0
    difficulty_breakdown: dict[str, int] = field(default_factory=dict)
    sources: dict[str, SourceStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopicStats:
        return cls(
            solved=int(data.get("solved", 0)),
            attempts=int(data.get("attempts", 0)),
            accuracy=float(data.get("accuracy", 0)),
            difficulty_breakdown={
                key: int(count)
                for key, count in _mapping(data.get("difficulty_breakdown"), "difficulty_breakdown").items()
            },
            sources={
                name: SourceStats.from_dict(_mapping(stats, "sources"))
                for name, stats in _mapping(data.get("sources"), "sources").items()
            },
        )


@dataclass
class DailyTimingRecord:
    """Per-day solve counts and time spent."""

    date: str
    problems_solved: list[str] = field(default_factory=list)
    total_solved: int = 0
    total_attempts: int = 0
    accuracy: float = 0.0
    total_time_spent: float = 0
    solved_time_spent: float = 0
    average_time_per_problem: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DailyTimingRecord:
        total_solved = int(data.get("total_solved", 0))
        average_time = float(data.get("average_time_per_problem", 0))
        solved_time = data.get("solved_time_spent")
        if solved_time is None:
            # Rows written before solved time was tracked
            solved_time = average_time * total_solved
        return cls(
            date=data["date"],
            problems_solved=list(data.get("problems_solved") or []),
            total_solved=total_solved,
            total_attempts=int(data.get("total_attempts", 0)),
            accuracy=float(data.get("accuracy", 0)),
            total_time_spent=data.get("total_time_spent", 0),
            solved_time_spent=solved_time,
            average_time_per_problem=average_time,
        )


# =============================================================================
# Aggregate
# =============================================================================


@dataclass
class ProblemStats:
    """Cumulative practice statistics for one user."""

    user_id: str
    total_problems_solved: int = 0
    daily_problems_solved: int = 0
    weekly_problems_solved: int = 0
    monthly_problems_solved: int = 0
    total_attempts: int = 0
    correct_attempts: int = 0
    average_accuracy: float = 0.0
    last_problem_solved: datetime | None = None
    last_daily_reset: datetime | None = None
    problems_by_topic: dict[str, TopicStats] = field(default_factory=dict)
    difficulty_stats: dict[str, DifficultyStats] = field(default_factory=dict)
    problem_timings_record: dict[str, DailyTimingRecord] = field(default_factory=dict)
    problem_collections: Any = field(default_factory=dict)
    problems_bookmarked: BookmarkSet = field(default_factory=BookmarkSet)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict; dates as ISO strings, bookmarks as a list."""
        return {
            "user_id": self.user_id,
            "total_problems_solved": self.total_problems_solved,
            "daily_problems_solved": self.daily_problems_solved,
            "weekly_problems_solved": self.weekly_problems_solved,
            "monthly_problems_solved": self.monthly_problems_solved,
            "total_attempts": self.total_attempts,
            "correct_attempts": self.correct_attempts,
            "average_accuracy": self.average_accuracy,
            "last_problem_solved": to_iso(self.last_problem_solved),
            "last_daily_reset": to_iso(self.last_daily_reset),
            "problems_by_topic": {
                topic: stats.to_dict() for topic, stats in self.problems_by_topic.items()
            },
            "difficulty_stats": {
                key: asdict(stats) for key, stats in self.difficulty_stats.items()
            },
            "problem_timings_record": {
                key: record.to_dict() for key, record in self.problem_timings_record.items()
            },
            "problem_collections": self.problem_collections,
            "problems_bookmarked": self.problems_bookmarked.to_list(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProblemStats:
        collections = data.get("problem_collections")
        return cls(
            user_id=data["user_id"],
            total_problems_solved=int(data.get("total_problems_solved") or 0),
            daily_problems_solved=int(data.get("daily_problems_solved") or 0),
            weekly_problems_solved=int(data.get("weekly_problems_solved") or 0),
            monthly_problems_solved=int(data.get("monthly_problems_solved") or 0),
            total_attempts=int(data.get("total_attempts") or 0),
            correct_attempts=int(data.get("correct_attempts") or 0),
            average_accuracy=float(data.get("average_accuracy") or 0),
            last_problem_solved=parse_date(data.get("last_problem_solved")),
            last_daily_reset=parse_date(data.get("last_daily_reset")),
            problems_by_topic={
                topic: TopicStats.from_dict(_mapping(stats, "problems_by_topic"))
                for topic, stats in _mapping(data.get("problems_by_topic"), "problems_by_topic").items()
            },
            difficulty_stats={
                key: DifficultyStats.from_dict(_mapping(stats, "difficulty_stats"))
                for key, stats in _mapping(data.get("difficulty_stats"), "difficulty_stats").items()
            },
            problem_timings_record={
                key: DailyTimingRecord.from_dict({"date": key, **_mapping(record, "problem_timings_record")})
                for key, record in _mapping(data.get("problem_timings_record"), "problem_timings_record").items()
            },
            problem_collections=collections if collections is not None else {},
            problems_bookmarked=BookmarkSet(_bookmark_ids(data.get("problems_bookmarked"))),
        )

    def copy(self) -> ProblemStats:
        """Deep copy via the dict round trip."""
        return ProblemStats.from_dict(self.to_dict())


# =============================================================================
# Query results
# =============================================================================


@dataclass
class DailyProblemData:
    date: str
    solved: int
    attempts: int
    accuracy: float


@dataclass
class TimingInsights:
    average_time_per_problem: int
    total_time_spent: int
    most_productive_day: str | None
    recent_performance_trend: str  # "improving", "declining", "stable"
