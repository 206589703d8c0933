"""
XP rewards for solved problems.

Base XP depends on difficulty; bonuses are awarded for first-try answers,
fast solves, crossing into topic mastery, and a perfect topic record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from loguru import logger

from src.analytics.manager import ProblemAnalyticsManager
from src.analytics.models import ProblemAttempt

XP_ACTIONS = {
    "PROBLEM_SOLVED_EASY": (10, "Easy problem solved!"),
    "PROBLEM_SOLVED_MEDIUM": (20, "Medium problem solved!"),
    "PROBLEM_SOLVED_HARD": (35, "Hard problem solved!"),
    "FIRST_TRY_CORRECT": (5, "First try bonus!"),
    "SPEED_BONUS": (15, "Speed completion bonus!"),
    "TOPIC_MASTERY": (100, "Topic mastered!"),
    "PERFECT_SCORE": (50, "Perfect score bonus!"),
}

MASTERY_MIN_SOLVED = 20
MASTERY_MIN_ACCURACY = 90.0
PERFECT_SCORE_MIN_SOLVED = 5


@dataclass
class XPBonus:
    type: str
    amount: int
    message: str


@dataclass
class ProblemXPResult:
    xp_awarded: int = 0
    messages: list[str] = field(default_factory=list)

    @property
    def xp_message(self) -> str:
        return " | ".join(self.messages)


def _bonus(action: str) -> XPBonus:
    amount, message = XP_ACTIONS[action]
    return XPBonus(type=action, amount=amount, message=message)


def base_xp_for_difficulty(difficulty: float) -> int:
    if difficulty <= 2.0:
        return XP_ACTIONS["PROBLEM_SOLVED_EASY"][0]
    if difficulty <= 4.0:
        return XP_ACTIONS["PROBLEM_SOLVED_MEDIUM"][0]
    return XP_ACTIONS["PROBLEM_SOLVED_HARD"][0]


def calculate_problem_xp(
    difficulty: float,
    is_correct: bool,
    time_spent: float,
    is_first_try: bool = False,
) -> tuple[int, list[XPBonus]]:
    """Base XP and per-attempt bonuses. Incorrect answers earn nothing."""
    if not is_correct:
        return 0, []

    bonuses = []
    if is_first_try:
        bonuses.append(_bonus("FIRST_TRY_CORRECT"))

    # Expected time is roughly one minute per difficulty point
    expected_time = difficulty * 60
    if time_spent < expected_time * 0.5:
        bonuses.append(_bonus("SPEED_BONUS"))

    return base_xp_for_difficulty(difficulty), bonuses


def is_topic_mastered(manager: ProblemAnalyticsManager, topic: str) -> bool:
    stats = manager.current_stats.problems_by_topic.get(topic)
    if stats is None:
        return False
    return stats.solved >= MASTERY_MIN_SOLVED and stats.accuracy >= MASTERY_MIN_ACCURACY


def is_perfect_score(
    manager: ProblemAnalyticsManager, topic: str, min_solved: int = PERFECT_SCORE_MIN_SOLVED
) -> bool:
    stats = manager.current_stats.problems_by_topic.get(topic)
    if stats is None:
        return False
    return stats.accuracy == 100 and stats.solved >= min_solved


def award_problem_xp(
    manager: ProblemAnalyticsManager,
    problem_id: str,
    topic: str,
    difficulty: float,
    source: str,
    is_correct: bool,
    time_spent: float,
    answer_given: str,
    is_first_try: bool = False,
    attempted_at: Optional[datetime] = None,
) -> ProblemXPResult:
    """
    Compute XP for a completed problem and record the attempt.

    Mastery and perfect-score bonuses are evaluated against the aggregate
    after the attempt has been applied.
    """
    result = ProblemXPResult()

    base_xp, bonuses = calculate_problem_xp(difficulty, is_correct, time_spent, is_first_try)
    total_xp = base_xp
    if base_xp:
        result.messages.append(f"+{base_xp} XP")
    for bonus in bonuses:
        total_xp += bonus.amount
        result.messages.append(f"+{bonus.amount} XP ({bonus.message})")

    was_mastered = is_topic_mastered(manager, topic)

    manager.record_attempt(
        ProblemAttempt(
            problem_id=problem_id,
            topic=topic,
            difficulty=difficulty,
            source=source,
            is_correct=is_correct,
            time_spent=time_spent,
            answer_given=answer_given,
            xp_earned=total_xp,
            attempted_at=attempted_at,
        )
    )

    if not was_mastered and is_topic_mastered(manager, topic):
        mastery = _bonus("TOPIC_MASTERY")
        total_xp += mastery.amount
        result.messages.append(f"+{mastery.amount} XP ({mastery.message})")

    if is_correct and is_perfect_score(manager, topic):
        perfect = _bonus("PERFECT_SCORE")
        total_xp += perfect.amount
        result.messages.append(f"+{perfect.amount} XP ({perfect.message})")

    result.xp_awarded = total_xp
    logger.debug("Problem completion processed: {} XP awarded for {} problem", total_xp, topic)
    return result
