"""Filesystem-backed thread store with one JSON document per thread."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, cast
from urllib.parse import quote, unquote

from ..interfaces import LockingThreadStore
from ..schema import ThreadRecord

LOGGER = logging.getLogger(__name__)

_SUFFIX = ".json"
_TEMP_PREFIX = ".tmp-"


def _ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _write_atomic(path: Path, payload: str) -> None:
    handle, temp_name = tempfile.mkstemp(dir=path.parent, prefix=_TEMP_PREFIX, suffix=_SUFFIX)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(payload)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


class LocalThreadStore(LockingThreadStore):
    """Persist threads as JSON files inside ``directory``.

    Writes go to a temporary file that is renamed over the target, so a crash
    mid-write leaves the previous version of the thread intact.
    """

    def __init__(self, directory: Path | str):
        super().__init__()
        self._directory = Path(directory)
        _ensure_directory(self._directory)

    @property
    def directory(self) -> Path:
        """Directory backing this store."""

        return self._directory

    def path_for(self, thread_id: str) -> Path:
        return self._directory / f"{quote(thread_id, safe='')}{_SUFFIX}"

    def _load(self, thread_id: str) -> Optional[ThreadRecord]:
        path = self.path_for(thread_id)
        if not path.exists():
            return None
        payload = path.read_text(encoding="utf-8")
        return cast(ThreadRecord, ThreadRecord.model_validate_json(payload))

    def _save(self, record: ThreadRecord) -> None:
        _ensure_directory(self._directory)
        payload = record.model_dump_json(by_alias=True)
        _write_atomic(self.path_for(record.thread_id), payload)
        LOGGER.debug("persisted thread %s", record.thread_id)

    def _remove(self, thread_id: str) -> bool:
        path = self.path_for(thread_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _keys(self) -> list[str]:
        if not self._directory.exists():
            return []
        return [
            unquote(path.name[: -len(_SUFFIX)])
            for path in self._directory.iterdir()
            if path.suffix == _SUFFIX and not path.name.startswith(_TEMP_PREFIX)
        ]


__all__ = ["LocalThreadStore"]
