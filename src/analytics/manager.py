"""
Problem Analytics Manager.

Owns the statistics aggregate and the pending-attempts queue for one signed-in
user. Attempts are applied to the in-memory aggregate immediately; persisting
them is the job of ``src.sync.controller``. The manager never touches the
network.

Usage:
    manager = ProblemAnalyticsManager(user, snapshot_store=snapshots)
    manager.check_and_reset_daily()
    manager.record_attempt(ProblemAttempt(...))
    manager.get_top_topics(limit=3)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from loguru import logger

from src.analytics.models import (
    DailyProblemData,
    DailyTimingRecord,
    DifficultyStats,
    ProblemAttempt,
    ProblemStats,
    SourceStats,
    TimingInsights,
    TopicStats,
    date_key,
    parse_date,
    start_of_day,
)

if TYPE_CHECKING:
    from src.persistence.emergency import EmergencySnapshotStore
    from src.remote.auth import IdentityUser

TIMING_RETENTION_DAYS = 90
TREND_WINDOW_DAYS = 7
TREND_THRESHOLD = 5.0

_Bucket = TypeVar("_Bucket")


@dataclass(frozen=True)
class SessionHandle:
    """
    Identifies one ownership period of the manager.

    The daily-reset latch fires at most once per handle; a new handle is
    issued when a new identity takes over.
    """

    user_id: str
    epoch: int = 0

    def next(self) -> SessionHandle:
        return SessionHandle(self.user_id, self.epoch + 1)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ProblemAnalyticsManager:
    """In-memory analytics aggregate plus pending queue for one user."""

    def __init__(
        self,
        user: IdentityUser,
        initial_stats: Optional[ProblemStats] = None,
        snapshot_store: Optional[EmergencySnapshotStore] = None,
        clock: Callable[[], datetime] = datetime.now,
        timing_retention_days: int = TIMING_RETENTION_DAYS,
    ):
        self.user = user
        self.snapshot_store = snapshot_store
        self.timing_retention_days = timing_retention_days
        self._clock = clock

        self.current_stats = initial_stats or self._default_stats()
        self.pending_attempts: list[ProblemAttempt] = []
        self.needs_daily_reset_save = False
        self.is_destroyed = False

        self.session = SessionHandle(user.uid)
        self._daily_reset_epoch: int | None = None

    def _default_stats(self) -> ProblemStats:
        return ProblemStats(
            user_id=self.user.uid,
            last_daily_reset=start_of_day(self._clock()),
        )

    # =========================================================================
    # Daily reset
    # =========================================================================

    def check_and_reset_daily(self) -> bool:
        """
        Zero the daily counter if the last reset was on another day.

        Fires at most once per session handle: later calls return False
        without looking at the clock.
        """
        if self._daily_reset_epoch == self.session.epoch:
            return False

        today = start_of_day(self._clock())
        last_reset = parse_date(self.current_stats.last_daily_reset)
        last_reset_day = start_of_day(last_reset) if last_reset else None

        reset_occurred = False
        if last_reset_day is None or last_reset_day != today:
            logger.info(
                "Resetting daily problem stats for new day (today={}, last reset={}, previous daily={})",
                date_key(today),
                date_key(last_reset_day) if last_reset_day else "never",
                self.current_stats.daily_problems_solved,
            )
            self.current_stats.daily_problems_solved = 0
            self.current_stats.last_daily_reset = today
            self.needs_daily_reset_save = True
            reset_occurred = True

        self._daily_reset_epoch = self.session.epoch
        return reset_occurred

    def reset_daily_processed_flag(self) -> None:
        """Start a new session handle so the daily-reset check runs again."""
        self.session = self.session.next()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_attempt(self, attempt: ProblemAttempt) -> None:
        """Apply one attempt to the aggregate and queue it for the next flush."""
        if self.is_destroyed:
            logger.warning("Cannot record attempt on destroyed ProblemAnalyticsManager")
            return

        if attempt.attempted_at is None:
            attempt = replace(attempt, attempted_at=self._clock())

        self.pending_attempts.append(attempt)

        stats = self.current_stats
        stats.total_attempts += 1
        if attempt.is_correct:
            stats.correct_attempts += 1
            stats.total_problems_solved += 1
            stats.daily_problems_solved += 1
            stats.last_problem_solved = self._clock()

        difficulty_key = attempt.difficulty_key

        topic_stats = self._bucket(stats.problems_by_topic, attempt.topic, TopicStats, "Topic")
        topic_stats.attempts += 1
        if attempt.is_correct:
            topic_stats.solved += 1
        topic_stats.accuracy = (topic_stats.solved / topic_stats.attempts) * 100

        topic_stats.difficulty_breakdown.setdefault(difficulty_key, 0)
        if attempt.is_correct:
            topic_stats.difficulty_breakdown[difficulty_key] += 1

        source_stats = self._bucket(topic_stats.sources, attempt.source, SourceStats, "Source")
        source_stats.record(attempt.is_correct)

        difficulty_stats = self._bucket(
            stats.difficulty_stats, difficulty_key, DifficultyStats, "Difficulty"
        )
        difficulty_stats.record(attempt.is_correct)

        stats.average_accuracy = (stats.correct_attempts / stats.total_attempts) * 100

        self._update_timing_record(attempt)

    def _bucket(
        self,
        mapping: dict[str, _Bucket],
        key: str,
        factory: Callable[[], _Bucket],
        label: str,
    ) -> _Bucket:
        bucket = mapping.get(key)
        if bucket is None:
            bucket = mapping[key] = factory()
        elif not isinstance(bucket, factory):  # type: ignore[arg-type]
            logger.warning("{} stats for {!r} corrupted, recreating", label, key)
            bucket = mapping[key] = factory()
        return bucket

    def _update_timing_record(self, attempt: ProblemAttempt) -> None:
        key = date_key(attempt.attempted_at or self._clock())
        records = self.current_stats.problem_timings_record

        record = records.get(key)
        if record is None:
            record = records[key] = DailyTimingRecord(date=key)

        record.total_attempts += 1
        record.total_time_spent += attempt.time_spent

        if attempt.is_correct:
            record.total_solved += 1
            record.solved_time_spent += attempt.time_spent
            # ids are deduplicated, total_solved counts every correct attempt
            if attempt.problem_id not in record.problems_solved:
                record.problems_solved.append(attempt.problem_id)

        record.accuracy = (
            (record.total_solved / record.total_attempts) * 100 if record.total_attempts > 0 else 0.0
        )
        # time on failed attempts counts toward total_time_spent only
        record.average_time_per_problem = (
            record.solved_time_spent / record.total_solved if record.total_solved > 0 else 0.0
        )

        self._prune_old_timing_records()

    def _prune_old_timing_records(self) -> None:
        cutoff = date_key(self._clock() - timedelta(days=self.timing_retention_days))
        records = self.current_stats.problem_timings_record
        for key in [key for key in records if key < cutoff]:
            del records[key]

    # =========================================================================
    # Analytics queries
    # =========================================================================

    def get_top_topics(self, limit: int = 5) -> list[dict]:
        topics = [
            {"topic": topic, "solved": stats.solved, "accuracy": stats.accuracy}
            for topic, stats in self.current_stats.problems_by_topic.items()
        ]
        topics.sort(key=lambda item: item["solved"], reverse=True)
        return topics[:limit]

    def get_difficulty_distribution(self) -> list[dict]:
        distribution = [
            {
                "difficulty": key,
                "solved": stats.solved,
                "attempts": stats.attempts,
                "accuracy": stats.accuracy,
            }
            for key, stats in self.current_stats.difficulty_stats.items()
        ]
        distribution.sort(key=lambda item: float(item["difficulty"]))
        return distribution

    def get_topic_breakdown(self) -> list[dict]:
        total_solved = self.current_stats.total_problems_solved
        breakdown = [
            {
                "topic": topic,
                "count": stats.solved,
                "percentage": _round_half_up(stats.solved / total_solved * 100) if total_solved > 0 else 0,
            }
            for topic, stats in self.current_stats.problems_by_topic.items()
        ]
        breakdown.sort(key=lambda item: item["count"], reverse=True)
        return breakdown

    def get_source_analysis(self) -> list[dict]:
        """Per-source rollup summed across every topic."""
        aggregated: dict[str, SourceStats] = {}
        for topic_stats in self.current_stats.problems_by_topic.values():
            for source, source_stats in topic_stats.sources.items():
                total = aggregated.setdefault(source, SourceStats())
                total.solved += source_stats.solved
                total.attempts += source_stats.attempts

        analysis = [
            {
                "source": source,
                "solved": stats.solved,
                "attempts": stats.attempts,
                "accuracy": (stats.solved / stats.attempts) * 100 if stats.attempts > 0 else 0.0,
            }
            for source, stats in aggregated.items()
        ]
        analysis.sort(key=lambda item: item["solved"], reverse=True)
        return analysis

    def get_past_30_days_data(self) -> list[DailyProblemData]:
        """One entry per day from 29 days ago through today, zero-filled."""
        today = start_of_day(self._clock())
        records = self.current_stats.problem_timings_record

        days = []
        for offset in range(29, -1, -1):
            key = date_key(today - timedelta(days=offset))
            record = records.get(key)
            days.append(
                DailyProblemData(
                    date=key,
                    solved=record.total_solved if record else 0,
                    attempts=record.total_attempts if record else 0,
                    accuracy=record.accuracy if record else 0.0,
                )
            )
        return days

    def get_timing_insights(self) -> TimingInsights:
        records = sorted(
            self.current_stats.problem_timings_record.values(), key=lambda r: r.date
        )

        total_time = sum(record.total_time_spent for record in records)
        total_solved = sum(record.total_solved for record in records)
        average_time = total_time / total_solved if total_solved > 0 else 0

        most_productive_day = None
        max_solved = 0
        for record in records:
            if record.total_solved > max_solved:
                max_solved = record.total_solved
                most_productive_day = record.date

        today = start_of_day(self._clock())
        recent_start = date_key(today - timedelta(days=TREND_WINDOW_DAYS - 1))
        previous_start = date_key(today - timedelta(days=2 * TREND_WINDOW_DAYS - 1))

        recent_week = [r for r in records if r.date >= recent_start]
        previous_week = [r for r in records if previous_start <= r.date < recent_start]

        trend = "stable"
        if recent_week and previous_week:
            recent_accuracy = sum(r.accuracy for r in recent_week) / len(recent_week)
            previous_accuracy = sum(r.accuracy for r in previous_week) / len(previous_week)
            improvement = recent_accuracy - previous_accuracy
            if improvement > TREND_THRESHOLD:
                trend = "improving"
            elif improvement < -TREND_THRESHOLD:
                trend = "declining"

        return TimingInsights(
            average_time_per_problem=_round_half_up(average_time),
            total_time_spent=_round_half_up(total_time),
            most_productive_day=most_productive_day,
            recent_performance_trend=trend,
        )

    def get_recent_timing_data(self, days: int = 7) -> list[DailyTimingRecord]:
        cutoff = date_key(start_of_day(self._clock()) - timedelta(days=days - 1))
        return sorted(
            (r for r in self.current_stats.problem_timings_record.values() if r.date >= cutoff),
            key=lambda r: r.date,
        )

    def get_topic_accuracy(self, topic: str) -> float:
        stats = self.current_stats.problems_by_topic.get(topic)
        return stats.accuracy if stats else 0.0

    def get_difficulty_accuracy(self, difficulty: float) -> float:
        stats = self.current_stats.difficulty_stats.get(f"{float(difficulty):.1f}")
        return stats.accuracy if stats else 0.0

    # =========================================================================
    # Queue & state
    # =========================================================================

    def get_current_stats(self) -> ProblemStats:
        return self.current_stats.copy()

    def get_pending_attempts(self) -> list[ProblemAttempt]:
        return list(self.pending_attempts)

    def get_pending_count(self) -> int:
        return len(self.pending_attempts)

    def has_unsaved_changes(self) -> bool:
        return len(self.pending_attempts) > 0 or self.needs_daily_reset_save

    def set_pending_attempts(self, attempts: list[ProblemAttempt]) -> None:
        if self.is_destroyed:
            logger.warning("Cannot set pending attempts on destroyed ProblemAnalyticsManager")
            return
        self.pending_attempts = list(attempts)
        logger.info("Set {} pending problem attempts for recovery", len(attempts))

    def set_needs_daily_reset_save(self, needs: bool) -> None:
        self.needs_daily_reset_save = needs

    def mark_saved(self, flushed_count: int) -> None:
        """Drop the first ``flushed_count`` attempts after a confirmed write."""
        self.pending_attempts = self.pending_attempts[flushed_count:]
        self.needs_daily_reset_save = False

    @property
    def total_problems_solved(self) -> int:
        return self.current_stats.total_problems_solved

    @property
    def daily_problems_solved(self) -> int:
        return self.current_stats.daily_problems_solved

    def is_same_day(self, first: datetime, second: datetime) -> bool:
        return start_of_day(first) == start_of_day(second)

    # =========================================================================
    # Emergency snapshot & teardown
    # =========================================================================

    def emergency_local_save(self) -> None:
        """Write the aggregate and queue to local storage."""
        if self.snapshot_store is None:
            logger.warning("No emergency store configured - unsaved problem stats kept in memory only")
            return

        # Import here to avoid circular imports
        from src.persistence.emergency import EmergencySnapshot

        self.snapshot_store.save(
            EmergencySnapshot(
                user_id=self.user.uid,
                stats=self.current_stats.copy(),
                pending_attempts=list(self.pending_attempts),
                needs_daily_reset_save=self.needs_daily_reset_save,
            )
        )

    def destroy(self) -> None:
        self.is_destroyed = True

        if self.has_unsaved_changes():
            logger.info("Emergency saving problem stats before destruction...")
            self.emergency_local_save()

        logger.info("Problem Analytics Manager destroyed")
