"""Abstract thread store interface and the shared locking implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from copy import deepcopy
from typing import Any, Optional

from agentsync.core.message import Message, ensure_json_compatible, thaw_json
from agentsync.protocol.events import MessageRecord

from .schema import CheckpointRecord, ThreadRecord, utcnow


class ThreadStore(ABC):
    """Keyed storage of ``thread_id -> messages, agent states, checkpoints``."""

    @abstractmethod
    async def get(self, thread_id: str) -> ThreadRecord:
        """Return the thread, or an empty one when the id is unknown."""

    @abstractmethod
    async def append_message(self, thread_id: str, message: Message) -> ThreadRecord:
        """Append a finalized message to the thread's history."""

    @abstractmethod
    async def upsert_state(self, thread_id: str, agent_name: str, state: Any) -> ThreadRecord:
        """Record the latest state snapshot for ``agent_name``."""

    @abstractmethod
    async def delete(self, thread_id: str) -> bool:
        """Remove the thread; returns whether anything was deleted."""

    @abstractmethod
    async def list_threads(self) -> list[str]:
        """Return the identifiers of all persisted threads."""

    @abstractmethod
    async def save_checkpoint(self, thread_id: str, checkpoint: CheckpointRecord) -> ThreadRecord:
        """Persist a checkpoint marker for an interrupted run."""

    @abstractmethod
    async def get_checkpoint(self, thread_id: str, checkpoint_id: str) -> Optional[CheckpointRecord]:
        """Return a pending checkpoint, if present."""

    @abstractmethod
    async def clear_checkpoint(self, thread_id: str, checkpoint_id: str) -> Optional[CheckpointRecord]:
        """Remove and return a pending checkpoint."""


class LockingThreadStore(ThreadStore):
    """Thread store that serializes writes per thread.

    Subclasses provide raw ``_load``/``_save``/``_remove``/``_keys`` access to
    their backend. Every write runs under a lock dedicated to its thread, so
    concurrent appends never interleave while independent threads proceed
    without contention. A thread's lock only exists while some operation
    holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = self._locks[thread_id] = asyncio.Lock()
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[thread_id] - 1
            if users:
                self._lock_users[thread_id] = users
            else:
                del self._lock_users[thread_id]
                del self._locks[thread_id]

    @abstractmethod
    def _load(self, thread_id: str) -> Optional[ThreadRecord]:
        """Read a thread from the backend."""

    @abstractmethod
    def _save(self, record: ThreadRecord) -> None:
        """Write a thread to the backend."""

    @abstractmethod
    def _remove(self, thread_id: str) -> bool:
        """Delete a thread from the backend."""

    @abstractmethod
    def _keys(self) -> list[str]:
        """List stored thread ids."""

    async def _update(
        self, thread_id: str, change: Callable[[ThreadRecord], dict[str, Any]]
    ) -> ThreadRecord:
        _check_thread_id(thread_id)
        async with self._locked(thread_id):
            current = self._load(thread_id) or ThreadRecord.empty(thread_id)
            updated = current.model_copy(update={**change(current), "updated_at": utcnow()})
            self._save(updated)
            return updated

    async def get(self, thread_id: str) -> ThreadRecord:
        _check_thread_id(thread_id)
        return self._load(thread_id) or ThreadRecord.empty(thread_id)

    async def append_message(self, thread_id: str, message: Message) -> ThreadRecord:
        record = MessageRecord.from_message(message)

        def _append(current: ThreadRecord) -> dict[str, Any]:
            if any(existing.id == record.id for existing in current.messages):
                msg = f"message '{record.id}' already exists in thread '{thread_id}'"
                raise ValueError(msg)
            return {"messages": [*current.messages, record]}

        return await self._update(thread_id, _append)

    async def upsert_state(self, thread_id: str, agent_name: str, state: Any) -> ThreadRecord:
        plain = thaw_json(state)
        ensure_json_compatible(plain, path=f"state[{agent_name}]")

        def _upsert(current: ThreadRecord) -> dict[str, Any]:
            return {"agent_states": {**current.agent_states, agent_name: deepcopy(plain)}}

        return await self._update(thread_id, _upsert)

    async def delete(self, thread_id: str) -> bool:
        _check_thread_id(thread_id)
        async with self._locked(thread_id):
            return self._remove(thread_id)

    async def list_threads(self) -> list[str]:
        return sorted(self._keys())

    async def save_checkpoint(self, thread_id: str, checkpoint: CheckpointRecord) -> ThreadRecord:
        def _save(current: ThreadRecord) -> dict[str, Any]:
            return {"checkpoints": {**current.checkpoints, checkpoint.checkpoint_id: checkpoint}}

        return await self._update(thread_id, _save)

    async def get_checkpoint(self, thread_id: str, checkpoint_id: str) -> Optional[CheckpointRecord]:
        record = await self.get(thread_id)
        return record.checkpoints.get(checkpoint_id)

    async def clear_checkpoint(self, thread_id: str, checkpoint_id: str) -> Optional[CheckpointRecord]:
        _check_thread_id(thread_id)
        async with self._locked(thread_id):
            current = self._load(thread_id)
            if current is None or checkpoint_id not in current.checkpoints:
                return None
            remaining = dict(current.checkpoints)
            removed = remaining.pop(checkpoint_id)
            self._save(current.model_copy(update={"checkpoints": remaining, "updated_at": utcnow()}))
            return removed


def _check_thread_id(thread_id: str) -> None:
    if not isinstance(thread_id, str) or not thread_id:
        msg = "thread id must be a non-empty string"
        raise ValueError(msg)


__all__ = ["LockingThreadStore", "ThreadStore"]
