"""
Local persistence for unsynced analytics.

Modules:
- kv_store: KeyValueStore port with in-memory and file-backed stores
- emergency: EmergencySnapshot and the read-once EmergencySnapshotStore
"""
from .kv_store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore

__all__ = ["FileKeyValueStore", "InMemoryKeyValueStore", "KeyValueStore"]
