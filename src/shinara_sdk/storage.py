"""Durable key-value storage for SDK state.

Values are JSON-compatible (strings and lists of strings). Multi-key
writes go through ``update()``, which applies all changes at once; a value
of ``None`` deletes the key.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from shinara_sdk.config import SDKConfig

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Process-wide storage keyed by string."""

    def get(self, key: str) -> Optional[Any]: ...

    def update(self, changes: Mapping[str, Optional[Any]]) -> None: ...


def _apply(data: Dict[str, Any], changes: Mapping[str, Optional[Any]]) -> None:
    for key, value in changes.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Store that lives for the lifetime of the process."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def update(self, changes: Mapping[str, Optional[Any]]) -> None:
        with self._lock:
            _apply(self._data, changes)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)


# ---------------------------------------------------------------------------
# JSON file
# ---------------------------------------------------------------------------


class JSONFileStore:
    """File-backed store that survives restarts.

    The whole document is rewritten on every update through a temp file and
    ``os.replace`` so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data = self._read()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("State file %s is not valid JSON; starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("State file %s is not a JSON object; starting empty", self.path)
            return {}
        return data

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def update(self, changes: Mapping[str, Optional[Any]]) -> None:
        with self._lock:
            staged = dict(self._data)
            _apply(staged, changes)
            previous, self._data = self._data, staged
            try:
                self._write()
            except OSError:
                self._data = previous
                logger.exception("Failed to persist SDK state to %s", self.path)
                raise


def create_store(config: SDKConfig) -> KeyValueStore:
    """Return the store selected by ``config.state_path``."""
    if config.state_path:
        return JSONFileStore(config.state_path)
    return InMemoryStore()
