"""
Emergency snapshots of unsynced analytics.

A snapshot is written when a flush fails or the session is torn down with
unsaved changes. It is read at most once: ``recover`` deletes the key before
deciding whether the contents are usable.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

from loguru import logger

from src.analytics.models import ProblemAttempt, ProblemStats
from src.errors import SnapshotError
from src.persistence.kv_store import KeyValueStore

EMERGENCY_KEY_PREFIX = "emergency_problem_stats_"
DEFAULT_MAX_AGE = timedelta(hours=24)


def emergency_key(user_id: str) -> str:
    return f"{EMERGENCY_KEY_PREFIX}{user_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class EmergencySnapshot:
    """Serialized aggregate, pending queue and reset flag for one user."""

    user_id: str
    stats: ProblemStats
    pending_attempts: list[ProblemAttempt] = field(default_factory=list)
    needs_daily_reset_save: bool = False
    timestamp: int = field(default_factory=_now_ms)  # epoch milliseconds

    def to_json(self) -> str:
        return json.dumps(
            {
                "stats": self.stats.to_dict(),
                "pendingAttempts": [attempt.to_dict() for attempt in self.pending_attempts],
                "needsDailyResetSave": self.needs_daily_reset_save,
                "timestamp": self.timestamp,
                "userId": self.user_id,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> EmergencySnapshot:
        try:
            data: dict[str, Any] = json.loads(raw)
            return cls(
                user_id=data["userId"],
                stats=ProblemStats.from_dict(data["stats"]),
                pending_attempts=[
                    ProblemAttempt.from_dict(item) for item in data.get("pendingAttempts") or []
                ],
                needs_daily_reset_save=bool(data.get("needsDailyResetSave", False)),
                timestamp=int(data["timestamp"]),
            )
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid emergency snapshot: {e}") from e


class EmergencySnapshotStore:
    """Snapshot persistence on top of a ``KeyValueStore``."""

    def __init__(
        self,
        store: KeyValueStore,
        max_age: timedelta = DEFAULT_MAX_AGE,
        now_ms: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.max_age = max_age
        self._now_ms = now_ms

    def save(self, snapshot: EmergencySnapshot) -> None:
        """Write the snapshot. Storage errors are logged, never raised."""
        try:
            self.store.set(emergency_key(snapshot.user_id), snapshot.to_json())
            logger.info(
                "Emergency problem stats saved for {} ({} pending attempts)",
                snapshot.user_id,
                len(snapshot.pending_attempts),
            )
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save emergency problem stats: {}", e)

    def recover(self, user_id: str) -> Optional[EmergencySnapshot]:
        """
        Read and delete the snapshot for ``user_id``.

        Returns the snapshot only if it belongs to ``user_id`` and is younger
        than ``max_age``. The key is removed in every case.
        """
        key = emergency_key(user_id)
        try:
            raw = self.store.get(key)
        except OSError as e:
            logger.error("Error reading emergency problem stats: {}", e)
            self._discard(key)
            return None

        if raw is None:
            return None

        self._discard(key)

        try:
            snapshot = EmergencySnapshot.from_json(raw)
        except SnapshotError as e:
            logger.error("Invalid emergency data format, removed: {}", e)
            return None

        age_ms = self._now_ms() - snapshot.timestamp
        if snapshot.user_id != user_id or age_ms >= self.max_age.total_seconds() * 1000:
            logger.info("Emergency problem stats too old or for different user, discarded")
            return None

        logger.info(
            "Found recent emergency problem stats for {} - recovering {} pending attempts",
            user_id,
            len(snapshot.pending_attempts),
        )
        return snapshot

    def peek(self, user_id: str) -> Optional[EmergencySnapshot]:
        """Read without consuming. Malformed data reads as None."""
        raw = self.store.get(emergency_key(user_id))
        if raw is None:
            return None
        try:
            return EmergencySnapshot.from_json(raw)
        except SnapshotError:
            return None

    def has_snapshot(self, user_id: str) -> bool:
        return self.store.get(emergency_key(user_id)) is not None

    def list_user_ids(self) -> list[str]:
        return [
            key[len(EMERGENCY_KEY_PREFIX):]
            for key in self.store.keys()
            if key.startswith(EMERGENCY_KEY_PREFIX)
        ]

    def clear_all(self) -> int:
        """Remove every emergency snapshot. Returns the number removed."""
        removed = 0
        for key in self.store.keys():
            if key.startswith(EMERGENCY_KEY_PREFIX):
                self._discard(key)
                removed += 1
        logger.info("Cleared {} emergency problem stats snapshots", removed)
        return removed

    def _discard(self, key: str) -> None:
        try:
            self.store.delete(key)
        except OSError as e:
            logger.error("Failed to clean up emergency data {}: {}", key, e)
