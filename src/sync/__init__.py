"""
Problem analytics sync engine.

Components:
- controller: AnalyticsSyncController (load, auto-save, reconnect, emergency recovery)
"""
from .controller import AnalyticsSyncController, SyncStatus

__all__ = ["AnalyticsSyncController", "SyncStatus"]
