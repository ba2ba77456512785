"""Runtime configuration shared by the orchestrator and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from .core.errors import ConfigurationError
from .io.adapters import InMemoryThreadStore, LocalThreadStore
from .io.interfaces import ThreadStore

ENV_PREFIX = "AGENTSYNC_"

STORE_BACKENDS = ("memory", "local")

_TIMEOUT_FIELDS = ("tool_timeout", "resume_timeout", "chunk_timeout", "run_timeout")


@dataclass(slots=True)
class RuntimeConfig:
    """Bounds and backend selection for running agents.

    Attributes
    ----------
    tool_timeout:
        Seconds to wait for a frontend tool result. ``None`` waits forever.
    resume_timeout:
        Seconds an interrupt checkpoint stays resumable. ``None`` keeps it
        until it is resumed or the thread is deleted.
    chunk_timeout:
        Seconds to wait for the next event from an agent target.
    run_timeout:
        Upper bound for a whole run, tool waits included.
    max_turns:
        Number of times the target may be invoked within a single run. Each
        round of tool results triggers another turn.
    store:
        Thread store backend, ``"memory"`` or ``"local"``.
    store_path:
        Directory used by the ``local`` backend.
    max_threads:
        Optional bound for the ``memory`` backend.
    """

    tool_timeout: float | None = None
    resume_timeout: float | None = None
    chunk_timeout: float | None = None
    run_timeout: float | None = None
    max_turns: int = 8
    store: str = "memory"
    store_path: str | None = None
    max_threads: int | None = None

    def __post_init__(self) -> None:
        for name in _TIMEOUT_FIELDS:
            value = getattr(self, name)
            if value is not None and value <= 0:
                msg = f"{name} must be a positive number of seconds"
                raise ConfigurationError(msg)
        if self.max_turns < 1:
            msg = "max_turns must be at least 1"
            raise ConfigurationError(msg)
        if self.store not in STORE_BACKENDS:
            msg = f"unknown store backend '{self.store}', expected one of {', '.join(STORE_BACKENDS)}"
            raise ConfigurationError(msg)
        if self.store == "local" and not self.store_path:
            msg = "the local store backend requires store_path"
            raise ConfigurationError(msg)
        if self.max_threads is not None and self.max_threads < 1:
            msg = "max_threads must be positive when provided"
            raise ConfigurationError(msg)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "RuntimeConfig":
        """Build a config from a plain mapping, converting string values."""

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            msg = f"unknown configuration keys: {', '.join(unknown)}"
            raise ConfigurationError(msg)

        values: dict[str, Any] = {}
        for key, raw in mapping.items():
            if key in _TIMEOUT_FIELDS:
                value = _parse_timeout(key, raw)
            elif key in {"max_turns", "max_threads"}:
                value = _parse_int(key, raw)
            else:
                value = None if raw in (None, "") else str(raw).strip()
            if value is None and key in {"max_turns", "store"}:
                # Fall back to the defaults instead of rejecting a blank value.
                continue
            values[key] = value
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RuntimeConfig":
        """Read ``AGENTSYNC_*`` variables, ignoring anything else."""

        source = os.environ if environ is None else environ
        known = {item.name for item in fields(cls)}
        mapping = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in source.items()
            if key.startswith(ENV_PREFIX) and key[len(ENV_PREFIX):].lower() in known
        }
        return cls.from_mapping(mapping)

    def build_store(self) -> ThreadStore:
        """Instantiate the configured thread store backend."""

        if self.store == "local":
            return LocalThreadStore(Path(self.store_path or "."))
        return InMemoryThreadStore(max_threads=self.max_threads)


def _parse_timeout(key: str, raw: Any) -> float | None:
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in {"", "none", "off"}):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        msg = f"{key} must be a number of seconds, got {raw!r}"
        raise ConfigurationError(msg) from exc
    return value


def _parse_int(key: str, raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        msg = f"{key} must be an integer, got {raw!r}"
        raise ConfigurationError(msg)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        msg = f"{key} must be an integer, got {raw!r}"
        raise ConfigurationError(msg) from exc


__all__ = ["ENV_PREFIX", "RuntimeConfig", "STORE_BACKENDS"]
