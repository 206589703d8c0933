"""
Sync/recovery controller for problem analytics.

Wraps a ProblemAnalyticsManager with the persistence policy:
- Startup: replay an emergency snapshot if one exists, else load the remote row
- Periodic refresh of UI-facing status (pending count, stats)
- Automatic flush once enough attempts are pending
- Flush on reconnect, on page hide and before sign-out
- Emergency snapshot when a flush fails or the page unloads

Runs on the caller's asyncio loop. Only one flush is in flight at a time.

Usage:
    controller = AnalyticsSyncController(user, remote, snapshots)
    await controller.start()
    controller.record_attempt(attempt)
    ...
    await controller.close()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from src.analytics.manager import TIMING_RETENTION_DAYS, ProblemAnalyticsManager
from src.analytics.models import ProblemAttempt, ProblemStats
from src.persistence.emergency import EmergencySnapshotStore
from src.persistence.kv_store import FileKeyValueStore

if TYPE_CHECKING:
    from config import Settings
    from src.remote.auth import IdentityUser
    from src.remote.supabase_client import ProblemDataStore

DEFAULT_REFRESH_INTERVAL_SECONDS = 2.0
DEFAULT_AUTO_SAVE_THRESHOLD = 5


@dataclass
class SyncStatus:
    """UI-facing view of the controller."""

    is_online: bool = True
    is_syncing: bool = False
    initialization_complete: bool = False
    emergency_recovered: bool = False
    unsaved_attempts: int = 0
    stats: ProblemStats | None = None
    last_sync_at: datetime | None = None
    last_sync_success: bool = True
    error_message: str | None = None
    total_syncs: int = 0


class AnalyticsSyncController:
    """Decides when the analytics aggregate is pushed to the remote store."""

    def __init__(
        self,
        user: IdentityUser,
        remote: ProblemDataStore,
        snapshot_store: EmergencySnapshotStore,
        refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        auto_save_threshold: int = DEFAULT_AUTO_SAVE_THRESHOLD,
        timing_retention_days: int = TIMING_RETENTION_DAYS,
        clock: Callable[[], datetime] = datetime.now,
        on_status_change: Callable[[SyncStatus], None] | None = None,
    ):
        self.user = user
        self.remote = remote
        self.snapshot_store = snapshot_store
        self.refresh_interval_seconds = refresh_interval_seconds
        self.auto_save_threshold = auto_save_threshold
        self.timing_retention_days = timing_retention_days
        self.on_status_change = on_status_change
        self._clock = clock

        self._status = SyncStatus()
        self._manager: ProblemAnalyticsManager | None = None
        self._flushing = False
        self._refresh_task: asyncio.Task | None = None
        self._background_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, user: IdentityUser, remote: ProblemDataStore, settings: Settings
    ) -> AnalyticsSyncController:
        snapshots = EmergencySnapshotStore(
            FileKeyValueStore(settings.emergency_dir),
            max_age=timedelta(hours=settings.emergency_max_age_hours),
        )
        return cls(
            user,
            remote,
            snapshots,
            refresh_interval_seconds=settings.refresh_interval_seconds,
            auto_save_threshold=settings.auto_save_threshold,
            timing_retention_days=settings.timing_retention_days,
        )

    @property
    def manager(self) -> ProblemAnalyticsManager | None:
        return self._manager

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._status.is_online

    def _new_manager(self, initial_stats: Optional[ProblemStats] = None) -> ProblemAnalyticsManager:
        return ProblemAnalyticsManager(
            self.user,
            initial_stats,
            snapshot_store=self.snapshot_store,
            clock=self._clock,
            timing_retention_days=self.timing_retention_days,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def load(self) -> ProblemStats:
        """
        Build the manager for the current user.

        A fresh emergency snapshot takes priority over the remote row. Remote
        load failures propagate; the controller is unusable afterwards.
        """
        logger.info("Initializing Problem Analytics Manager for user: {}", self.user.uid)
        self._status = SyncStatus(is_online=self._status.is_online)

        snapshot = self.snapshot_store.recover(self.user.uid)
        if snapshot is not None:
            logger.info("Recovering problem data from emergency save...")
            manager = self._new_manager(snapshot.stats)
            if snapshot.pending_attempts:
                manager.set_pending_attempts(snapshot.pending_attempts)
            if snapshot.needs_daily_reset_save:
                manager.set_needs_daily_reset_save(True)
            self._manager = manager
            self._status.emergency_recovered = True

            try:
                await self.save_stats()
                logger.info("Emergency problem data successfully saved to database")
            except Exception as e:
                logger.warning("Could not immediately save recovered problem data, will retry later: {}", e)
        else:
            stats = await self.remote.load_stats(self.user.uid)
            if stats is None:
                logger.info("No existing problem stats found, creating new record")
                stats = await self.remote.create_stats(self.user.uid)
            self._manager = self._new_manager(stats)

        if self._manager.check_and_reset_daily():
            logger.info("Daily reset occurred during problem analytics initialization")

        self._status.initialization_complete = True
        self.refresh()
        logger.info("Problem Analytics Manager initialization complete")
        return self._manager.get_current_stats()

    async def start(self) -> ProblemStats:
        """Load, then start the periodic refresh task."""
        stats = await self.load()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop(), name="problem-stats-refresh")
        return stats

    async def close(self) -> None:
        """Stop background work, flush what we can and destroy the manager."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        await self._drain_background_tasks()

        if self._manager is not None:
            await self.prepare_for_sign_out()
            await self._drain_background_tasks()
            self._manager.destroy()
            self._manager = None

        self.remote.clear_session()
        self._status.initialization_complete = False

    async def switch_user(self, user: IdentityUser, remote: ProblemDataStore) -> ProblemStats:
        """Hand ownership to a new identity: close the old session, load the new one."""
        restart = self._refresh_task is not None
        await self.close()
        self.user = user
        self.remote = remote
        return await (self.start() if restart else self.load())

    # =========================================================================
    # Recording & status
    # =========================================================================

    def record_attempt(self, attempt: ProblemAttempt) -> None:
        if self._manager is None or not self._status.initialization_complete:
            logger.warning("Problem Manager not available or not initialized")
            return
        if self._manager.is_destroyed:
            logger.warning("Problem Manager has been destroyed")
            return

        self._manager.record_attempt(attempt)
        logger.debug(
            "Recorded problem attempt: {} ({}) - {}",
            attempt.topic,
            attempt.difficulty,
            "Correct" if attempt.is_correct else "Incorrect",
        )
        self.refresh()

    def refresh(self) -> SyncStatus:
        """Copy pending count and stats into the status; schedule auto-save at threshold."""
        if self._manager is None:
            return self._status

        self._status.unsaved_attempts = self._manager.get_pending_count()
        self._status.stats = self._manager.get_current_stats()

        if self.on_status_change is not None:
            try:
                self.on_status_change(self._status)
            except Exception as e:
                logger.error("Status callback failed: {}", e)

        if (
            self._status.is_online
            and self._status.unsaved_attempts >= self.auto_save_threshold
            and not self._flushing
        ):
            self._schedule_flush("auto-save")

        return self._status

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval_seconds)
            try:
                self.refresh()
            except Exception as e:
                logger.error("Problem stats refresh failed: {}", e)

    def _schedule_flush(self, reason: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop - {} deferred", reason)
            return

        logger.info("Auto-saving problem stats: {} pending attempts", self._status.unsaved_attempts)
        task = loop.create_task(self._background_flush(reason))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _background_flush(self, reason: str) -> None:
        try:
            if await self.save_stats():
                logger.info("Problem stats {} successful", reason)
        except Exception as e:
            logger.error("Problem stats {} failed: {}", reason, e)

    async def _drain_background_tasks(self) -> None:
        """Wait for in-flight auto-saves; their failures are already logged."""
        pending = [task for task in self._background_tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._background_tasks if not task.done()]

    # =========================================================================
    # Flush
    # =========================================================================

    async def save_stats(self) -> bool:
        """
        Push the full aggregate to the remote store.

        Returns False when there was nothing to do or the flush was skipped.
        On failure the emergency snapshot is written and the error re-raised.
        """
        manager = self._manager
        if manager is None or not manager.has_unsaved_changes():
            return False

        if not self._status.is_online or manager.is_destroyed:
            logger.warning("Cannot save problem stats - offline or destroyed")
            return False

        if self._flushing:
            logger.debug("Problem stats save already in progress - skipping")
            return False

        self._flushing = True
        self._status.is_syncing = True
        flushed_count = manager.get_pending_count()
        stats = manager.get_current_stats()

        try:
            await self.remote.save_stats(stats)
        except Exception as e:
            logger.error("Failed to save problem stats: {}", e)
            self._status.last_sync_success = False
            self._status.error_message = str(e)
            manager.emergency_local_save()
            raise
        finally:
            self._flushing = False
            self._status.is_syncing = False

        manager.mark_saved(flushed_count)
        self._status.last_sync_at = self._clock()
        self._status.last_sync_success = True
        self._status.error_message = None
        self._status.total_syncs += 1
        self._status.unsaved_attempts = manager.get_pending_count()
        logger.info("Problem stats saved successfully ({} total solved)", stats.total_problems_solved)
        return True

    async def force_save(self) -> bool:
        saved = await self.save_stats()
        self.refresh()
        return saved

    def has_unsaved_changes(self) -> bool:
        return self._manager is not None and self._manager.has_unsaved_changes()

    # =========================================================================
    # Host events
    # =========================================================================

    async def set_online(self, online: bool) -> None:
        was_online = self._status.is_online
        self._status.is_online = online

        if not online:
            logger.info("Connection lost")
            return

        if was_online:
            return

        logger.info("Connection restored")
        if self.has_unsaved_changes():
            logger.info("Back online - attempting to save pending problem attempts...")
            try:
                if await self.save_stats():
                    logger.info("Successfully saved pending problem attempts after reconnection")
            except Exception as e:
                logger.error("Save after reconnection failed: {}", e)
            self.refresh()

    async def on_page_hidden(self) -> None:
        """Best-effort flush; falls back to the emergency snapshot."""
        if not self.has_unsaved_changes():
            return
        logger.info("Tab hidden - attempting to save problem stats")
        await self._flush_or_snapshot()

    def on_unload(self) -> None:
        """No time for network I/O: snapshot whatever is unsaved."""
        if self._manager is not None and self._manager.has_unsaved_changes():
            logger.info("Page unloading - emergency save problem stats")
            self._manager.emergency_local_save()

    async def prepare_for_sign_out(self) -> None:
        if not self.has_unsaved_changes():
            return
        logger.info("Saving problem stats before sign out...")
        await self._flush_or_snapshot()

    async def _flush_or_snapshot(self) -> None:
        if self._manager is None:
            return
        try:
            await self.save_stats()
        except Exception:
            logger.warning("Save failed - falling back to emergency snapshot")
            return  # save_stats already wrote the snapshot

        if self._manager.has_unsaved_changes():
            self._manager.emergency_local_save()
