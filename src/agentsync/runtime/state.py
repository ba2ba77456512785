"""Authoritative agent state for one (thread, agent) pair."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from copy import deepcopy
import logging
import threading
from typing import Any

from agentsync.core.errors import PatchError
from agentsync.core.message import ensure_json_compatible, thaw_json
from agentsync.protocol.events import BaseEvent, PatchOperation, StateDeltaEvent, StateSnapshotEvent

from .patch import apply_patch, deep_merge

LOGGER = logging.getLogger(__name__)

StateListener = Callable[[Any], None]


class StateSynchronizer:
    """Apply agent-emitted and UI-originated writes to a shared state value.

    Writes from both directions are applied strictly in the order they are
    received; the last write wins. An agent snapshot therefore overwrites any
    earlier local merge, and a local merge overwrites the leaves it touches in
    an earlier snapshot. There is no reordering buffer.
    """

    def __init__(
        self,
        initial: Any = None,
        *,
        thread_id: str | None = None,
        agent_name: str | None = None,
    ) -> None:
        self.thread_id = thread_id
        self.agent_name = agent_name
        self._value = self._sanitize(initial if initial is not None else {})
        self._version = 0
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []

    @property
    def value(self) -> Any:
        """A detached copy of the current state."""

        with self._lock:
            return deepcopy(self._value)

    @property
    def version(self) -> int:
        """Number of successful writes applied so far."""

        return self._version

    def apply_snapshot(self, value: Any) -> Any:
        """Replace the state wholesale."""

        sanitized = self._sanitize(value)
        with self._lock:
            self._value = sanitized
            self._version += 1
            current = deepcopy(self._value)
        LOGGER.debug("state snapshot applied thread=%s agent=%s", self.thread_id, self.agent_name)
        self._notify(current)
        return current

    def apply_delta(self, patch: Iterable[PatchOperation | Mapping[str, Any]]) -> Any:
        """Apply an ordered patch atomically.

        Raises :class:`PatchError` and leaves the state unchanged if any
        operation fails.
        """

        operations = list(patch)
        with self._lock:
            updated = apply_patch(self._value, operations)
            self._value = updated
            self._version += 1
            current = deepcopy(updated)
        LOGGER.debug(
            "state delta applied thread=%s agent=%s ops=%d",
            self.thread_id,
            self.agent_name,
            len(operations),
        )
        self._notify(current)
        return current

    def merge_local(self, partial: Mapping[str, Any]) -> Any:
        """Deep-merge a UI-originated partial object into the state.

        Leaf values from ``partial`` win, nested mappings merge recursively and
        lists are replaced rather than concatenated.
        """

        if not isinstance(partial, Mapping):
            msg = "local state updates must be mappings"
            raise TypeError(msg)
        sanitized = self._sanitize(partial)
        with self._lock:
            self._value = deep_merge(self._value, sanitized)
            self._version += 1
            current = deepcopy(self._value)
        LOGGER.debug("local state merged thread=%s agent=%s", self.thread_id, self.agent_name)
        self._notify(current)
        return current

    def apply_event(self, event: BaseEvent) -> bool:
        """Apply a state event; returns ``False`` for non-state events."""

        if isinstance(event, StateSnapshotEvent):
            self.apply_snapshot(event.snapshot)
            return True
        if isinstance(event, StateDeltaEvent):
            self.apply_delta(event.delta)
            return True
        return False

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for post-write notifications.

        Returns a callable that removes the listener again.
        """

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, current: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(deepcopy(current))
            except Exception:
                LOGGER.warning("state listener %r failed", listener, exc_info=True)

    @staticmethod
    def _sanitize(value: Any) -> Any:
        plain = thaw_json(value)
        try:
            ensure_json_compatible(plain, path="state")
        except (TypeError, ValueError) as exc:
            raise PatchError(str(exc)) from exc
        return deepcopy(plain)


__all__ = ["StateListener", "StateSynchronizer"]
