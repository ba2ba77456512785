"""Thread persistence for agentsync."""

from .adapters import InMemoryThreadStore, LocalThreadStore
from .interfaces import LockingThreadStore, ThreadStore
from .schema import CheckpointRecord, ThreadRecord

__all__ = [
    "CheckpointRecord",
    "InMemoryThreadStore",
    "LocalThreadStore",
    "LockingThreadStore",
    "ThreadRecord",
    "ThreadStore",
]
