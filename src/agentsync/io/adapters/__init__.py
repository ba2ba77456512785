"""Concrete thread store implementations."""

from .local import LocalThreadStore
from .memory import InMemoryThreadStore

__all__ = ["InMemoryThreadStore", "LocalThreadStore"]
