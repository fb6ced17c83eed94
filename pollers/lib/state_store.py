"""Durable offset storage keyed by source partition.

The store holds one offset per source partition (normally the source's
full base URL). ``OffsetPersistenceAdapter`` is the only thing the
polling loop talks to: it restores the offset at start-up and commits
the new one once the records it covers are safely downstream.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pollers.lib.state import PaginationState

logger = logging.getLogger(__name__)

__all__ = [
    "OffsetStore",
    "MemoryOffsetStore",
    "FileOffsetStore",
    "OffsetPersistenceAdapter",
    "DEFAULT_STATE_DIR",
]

DEFAULT_STATE_DIR = ".state"
STATE_DIR_ENV = "POLLER_STATE_DIR"


class OffsetStore(ABC):
    """Key-value store of ``partition -> offset entry``."""

    @abstractmethod
    def load(self, partition: str) -> Optional[Dict[str, Any]]:
        """Stored entry for ``partition`` (``{"offset": ..., ...}``) or None."""
        ...

    @abstractmethod
    def save(self, partition: str, entry: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, partition: str) -> bool:
        ...

    @abstractmethod
    def list_offsets(self) -> Dict[str, Dict[str, Any]]:
        ...


class MemoryOffsetStore(OffsetStore):
    """In-process store, for tests and single-run tools."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}

    def load(self, partition: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(partition)
        return dict(entry) if entry is not None else None

    def save(self, partition: str, entry: Dict[str, Any]) -> None:
        self._entries[partition] = dict(entry)

    def delete(self, partition: str) -> bool:
        return self._entries.pop(partition, None) is not None

    def list_offsets(self) -> Dict[str, Dict[str, Any]]:
        return {k: dict(v) for k, v in self._entries.items()}


class FileOffsetStore(OffsetStore):
    """One JSON file per partition under a state directory.

    The directory defaults to ``$POLLER_STATE_DIR`` or ``.state``. Files
    are named from a hash of the partition key, which is stored inside the
    file. Writes go through a temporary file and ``os.replace`` so a crash
    never leaves a half-written offset behind.
    """

    def __init__(self, state_dir: Optional[Union[str, Path]] = None) -> None:
        if state_dir is None:
            state_dir = os.environ.get(STATE_DIR_ENV, DEFAULT_STATE_DIR)
        self.state_dir = Path(state_dir)

    def _path(self, partition: str) -> Path:
        digest = hashlib.sha256(partition.encode("utf-8")).hexdigest()[:32]
        return self.state_dir / f"{digest}_offset.json"

    def load(self, partition: str) -> Optional[Dict[str, Any]]:
        path = self._path(partition)

        if not path.exists():
            logger.debug("No stored offset for %s", partition)
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Invalid offset file for %s: %s", partition, exc)
            return None

        if not isinstance(data, dict) or data.get("partition") != partition:
            logger.warning("Offset file %s does not belong to %s; ignoring it", path, partition)
            return None

        logger.debug(
            "Found offset for %s: %s (updated %s)",
            partition,
            data.get("offset"),
            data.get("updated_at", "unknown"),
        )
        return data

    def save(self, partition: str, entry: Dict[str, Any]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(partition)
        data = dict(entry, partition=partition)

        fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".offset-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, partition: str) -> bool:
        path = self._path(partition)
        if path.exists():
            path.unlink()
            logger.info("Deleted stored offset for %s", partition)
            return True
        return False

    def list_offsets(self) -> Dict[str, Dict[str, Any]]:
        if not self.state_dir.exists():
            return {}

        offsets: Dict[str, Dict[str, Any]] = {}
        for path in sorted(self.state_dir.glob("*_offset.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                offsets[data["partition"]] = data
            except (json.JSONDecodeError, KeyError, TypeError, OSError) as exc:
                logger.warning("Invalid offset file %s: %s", path, exc)
        return offsets


class OffsetPersistenceAdapter:
    """Restore and commit a source's offset through an ``OffsetStore``."""

    def __init__(self, store: OffsetStore) -> None:
        self.store = store

    def restore(self, partition: str) -> Optional[str]:
        """Previously committed offset for ``partition``, if any."""
        entry = self.store.load(partition)
        if not entry:
            return None
        offset = entry.get("offset")
        return None if offset is None else str(offset)

    def commit(self, partition: str, state: PaginationState) -> None:
        """Persist ``state.offset_value`` for ``partition``.

        Call only after the records produced alongside ``state`` have been
        committed downstream; committing earlier can skip records on restart.
        """
        entry = {
            "offset": state.offset_value,
            "kind": state.kind.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self.store.save(partition, entry)
        logger.info("Committed offset for %s: %s", partition, state.offset_value)

    def clear(self, partition: str) -> bool:
        return self.store.delete(partition)
