"""Reminder handle store persisted as a single JSON document."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonReminderHandleStore:
    """Same contract as the in-memory store, but survives a restart.

    The whole key -> handle ids map is rewritten on every change.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, list[str]]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable reminder store %s, starting empty: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Reminder store %s is not a mapping, starting empty", self._path)
            return {}
        return {
            str(key): [str(h) for h in ids]
            for key, ids in raw.items()
            if isinstance(ids, list)
        }

    def _save(self, sets: dict[str, list[str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(sets, indent=2, sort_keys=True), encoding="utf-8")

    def get(self, key: str) -> list[str]:
        with self._lock:
            return self._load().get(key, [])

    def put(self, key: str, handle_ids: list[str]) -> None:
        with self._lock:
            sets = self._load()
            if handle_ids:
                sets[key] = list(handle_ids)
            else:
                sets.pop(key, None)
            self._save(sets)

    def remove_handle(self, key: str, handle_id: str) -> None:
        with self._lock:
            sets = self._load()
            remaining = [h for h in sets.get(key, []) if h != handle_id]
            if remaining:
                sets[key] = remaining
            else:
                sets.pop(key, None)
            self._save(sets)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load())
