"""Stores package for Lockpick room persistence."""

from .snapshot_store import SnapshotStore, SNAPSHOT_VERSION

__all__ = [
    "SnapshotStore",
    "SNAPSHOT_VERSION",
]
