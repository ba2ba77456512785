"""In-process thread store."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

from ..interfaces import LockingThreadStore
from ..schema import ThreadRecord

LOGGER = logging.getLogger(__name__)


class InMemoryThreadStore(LockingThreadStore):
    """Keep threads in a dictionary, optionally bounded to ``max_threads``.

    When bounded, the least recently written thread is evicted first.
    """

    def __init__(self, *, max_threads: int | None = None):
        super().__init__()
        if max_threads is not None and max_threads <= 0:
            msg = "max_threads must be positive when provided"
            raise ValueError(msg)
        self._max_threads = max_threads
        self._threads: OrderedDict[str, ThreadRecord] = OrderedDict()

    def _load(self, thread_id: str) -> Optional[ThreadRecord]:
        record = self._threads.get(thread_id)
        return record.model_copy(deep=True) if record is not None else None

    def _save(self, record: ThreadRecord) -> None:
        self._threads[record.thread_id] = record.model_copy(deep=True)
        self._threads.move_to_end(record.thread_id)
        if self._max_threads is None:
            return
        while len(self._threads) > self._max_threads:
            evicted, _ = self._threads.popitem(last=False)
            LOGGER.info("evicted thread %s from memory store", evicted)

    def _remove(self, thread_id: str) -> bool:
        return self._threads.pop(thread_id, None) is not None

    def _keys(self) -> list[str]:
        return list(self._threads)


__all__ = ["InMemoryThreadStore"]
