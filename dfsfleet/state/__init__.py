"""
Persistent scheduler state.

Task and volume registries over a versioned key/value store.
"""

from dfsfleet.state.phase import AcquisitionPhase
from dfsfleet.state.records import NodeRole, TaskRecord, VolumeRecord
from dfsfleet.state.registry import StateRegistry, merge_statuses
from dfsfleet.state.serializer import SerializationError
from dfsfleet.state.store import (
    CorruptEntryError,
    FileStateStore,
    InMemoryStateStore,
    NamespaceNotFoundError,
    StateFactory,
    StateStore,
    StoreConflictError,
    StoreError,
    Variable,
)

__all__ = [
    # Registry
    "StateRegistry",
    "merge_statuses",
    "AcquisitionPhase",
    # Records
    "NodeRole",
    "TaskRecord",
    "VolumeRecord",
    "SerializationError",
    # Store
    "StateFactory",
    "StateStore",
    "InMemoryStateStore",
    "FileStateStore",
    "Variable",
    "StoreError",
    "StoreConflictError",
    "CorruptEntryError",
    "NamespaceNotFoundError",
]
