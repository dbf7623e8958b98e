"""
Persistence adapter contract, two stores, and the debounced saver.

Adapters only move plain dicts; turning them into a `MindMap` (and falling
back to a fresh map on failure) is the editor's job via `load_or_fresh`.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from mindmap_mcp.models import DeserializationError, MindMap, MindMapError

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 1.0

_MAP_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class MapNotFoundError(MindMapError):
    """Raised by an adapter when no map is stored under the given id."""

    def __init__(self, map_id: str) -> None:
        self.map_id = map_id
        super().__init__(f"Mind map '{map_id}' not found.")


class PersistenceAdapter(Protocol):
    def load(self, map_id: str) -> dict[str, Any]: ...

    def save(self, map_id: str, payload: dict[str, Any]) -> None: ...


def timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def serialize(mind_map: MindMap) -> dict[str, Any]:
    """Persisted shape of *mind_map*, stamped with ``updatedAt``."""
    payload = mind_map.to_dict()
    payload["updatedAt"] = timestamp()
    return payload


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class MemoryStore:
    """Keeps JSON text per map id; handy for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def load(self, map_id: str) -> dict[str, Any]:
        if map_id not in self._data:
            raise MapNotFoundError(map_id)
        try:
            return json.loads(self._data[map_id])
        except ValueError as exc:
            raise DeserializationError(f"Stored map '{map_id}' is not valid JSON: {exc}") from exc

    def save(self, map_id: str, payload: dict[str, Any]) -> None:
        self._data[map_id] = json.dumps(payload)

    def put_raw(self, map_id: str, text: str) -> None:
        self._data[map_id] = text

    def ids(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """One ``<map_id>.json`` file per map under *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, map_id: str) -> Path:
        if not _MAP_ID_RE.match(map_id) or map_id in (".", ".."):
            raise MindMapError(f"Invalid map id '{map_id}'.")
        return self.directory / f"{map_id}.json"

    def load(self, map_id: str) -> dict[str, Any]:
        path = self.path_for(map_id)
        if not path.exists():
            raise MapNotFoundError(map_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError
            raise DeserializationError(f"{path} is not valid UTF-8 JSON: {exc}") from exc

    def save(self, map_id: str, payload: dict[str, Any]) -> None:
        path = self.path_for(map_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(path)

    def ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))


def load_or_fresh(
    adapter: PersistenceAdapter,
    map_id: str,
    fresh: Callable[[], MindMap],
) -> tuple[MindMap, bool]:
    """Load *map_id*, or build ``fresh()`` when missing or unreadable.

    Returns the map and whether it came from storage.
    """
    try:
        return MindMap.from_dict(adapter.load(map_id)), True
    except MapNotFoundError:
        logger.info("Mind map '%s' not found, starting a new one", map_id)
    except DeserializationError as exc:
        logger.warning("Mind map '%s' could not be read (%s); starting a new one", map_id, exc.message)
    return fresh(), False


# ---------------------------------------------------------------------------
# Debounced saving
# ---------------------------------------------------------------------------

class DebouncedSaver:
    """Coalesces rapid mutations into one save after a quiet period.

    Each `schedule` call cancels the pending timer and arms a new one, so
    only the payload of the last call is written. Callers should bind the
    payload to the state they scheduled; the timer fires on another thread.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter,
        delay: float = DEBOUNCE_SECONDS,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ) -> None:
        self.adapter = adapter
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._pending: Optional[tuple[str, Callable[[], dict[str, Any]]]] = None
        self.save_count = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, map_id: str, payload: Callable[[], dict[str, Any]]) -> None:
        with self._lock:
            self._cancel_locked()
            self._pending = (map_id, payload)
            timer = self._timer_factory(self.delay, self._fire)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Drop any pending save without writing it."""
        with self._lock:
            self._cancel_locked()

    def flush(self) -> bool:
        """Write the pending save now; returns False when nothing was pending."""
        with self._lock:
            pending = self._pending
            self._cancel_locked()
        if pending is None:
            return False
        self._write(*pending)
        return True

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None

    def _fire(self) -> None:
        with self._lock:
            pending = self._pending
            self._timer = None
            self._pending = None
        if pending is not None:
            self._write(*pending)

    def _write(self, map_id: str, payload: Callable[[], dict[str, Any]]) -> None:
        try:
            self.adapter.save(map_id, payload())
        except (OSError, MindMapError):
            logger.exception("Saving mind map '%s' failed", map_id)
            return
        self.save_count += 1
        logger.debug("Saved mind map '%s'", map_id)
