from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .identity import identity_of
from .models import TemplateRecord

logger = logging.getLogger(__name__)

STORE_EVENT_CREATED = "created"
STORE_EVENT_REMOVED = "removed"

StoreListener = Callable[[str, str], None]

# Keys written by the browser build of the template manager.
_RECORD_KEY_ALIASES = {
    "sortID": "sort_id",
    "authorID": "author_id",
    "displayName": "display_name",
    "pixelCount": "pixel_count",
}


class TemplateStore(Protocol):
    """What the gallery needs from the store that owns the templates.

    ``templates`` is authoritative for membership and display order. The
    per-identity settings map is only reached through the accessors below.
    """

    templates: list[TemplateRecord]

    def get_settings(self, identity: str) -> dict[str, Any] | None: ...

    def is_enabled(self, identity: str) -> bool: ...

    def set_enabled(self, identity: str, enabled: bool) -> bool: ...

    def remove_by_identity(self, identity: str) -> bool: ...


class InMemoryTemplateStore:
    def __init__(
        self,
        templates: list[TemplateRecord] | None = None,
        settings: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.templates: list[TemplateRecord] = list(templates or [])
        self.settings: dict[str, dict[str, Any]] = dict(settings or {})
        self._lock = threading.RLock()
        self._listeners: list[StoreListener] = []

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: str, identity: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, identity)
            except Exception as exc:
                logger.exception("template store listener failed", exc_info=exc)

    def get_settings(self, identity: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self.settings.get(identity)
            return dict(entry) if entry is not None else None

    def is_enabled(self, identity: str) -> bool:
        with self._lock:
            entry = self.settings.get(identity)
            if entry is None:
                return True
            return entry.get("enabled") is not False

    def set_enabled(self, identity: str, enabled: bool) -> bool:
        with self._lock:
            entry = self.settings.get(identity)
            if entry is None:
                return False
            entry["enabled"] = bool(enabled)
        return True

    def create_template(
        self, record: TemplateRecord, *, enabled: bool = True, name: str | None = None
    ) -> str:
        identity = identity_of(record)
        with self._lock:
            self.templates.append(record)
            self.settings[identity] = {
                "enabled": enabled,
                "name": name or record.display_name,
            }
        self._notify(STORE_EVENT_CREATED, identity)
        return identity

    def remove_by_identity(self, identity: str) -> bool:
        with self._lock:
            kept = [record for record in self.templates if identity_of(record) != identity]
            if len(kept) == len(self.templates):
                return False
            self.templates[:] = kept
            self.settings.pop(identity, None)
        self._notify(STORE_EVENT_REMOVED, identity)
        return True


def record_from_dict(data: dict[str, Any], *, base_dir: Path | None = None) -> TemplateRecord:
    values = {_RECORD_KEY_ALIASES.get(key, key): value for key, value in data.items()}
    file_value = values.get("file")
    if isinstance(file_value, str) and base_dir is not None:
        file_path = Path(file_value).expanduser()
        if not file_path.is_absolute():
            file_path = base_dir / file_path
        file_value = str(file_path)
    coords = values.get("coords")
    return TemplateRecord(
        sort_id=values.get("sort_id"),
        author_id=values.get("author_id"),
        id=values.get("id"),
        display_name=values.get("display_name"),
        coords=tuple(coords) if isinstance(coords, list) else coords,
        pixel_count=values.get("pixel_count"),
        file=file_value,
        chunked=values.get("chunked"),
    )


def read_store_file(path: Path) -> tuple[list[TemplateRecord], dict[str, dict[str, Any]]]:
    raw = path.read_text()
    try:
        data = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid template store json: {path}") from exc
    if not isinstance(data, dict):
        raise ValueError("template store must be an object")
    base_dir = path.parent
    templates = [
        record_from_dict(item, base_dir=base_dir)
        for item in data.get("templates") or []
        if isinstance(item, dict)
    ]
    settings_raw = data.get("settings") or {}
    settings = {
        str(identity): dict(entry)
        for identity, entry in settings_raw.items()
        if isinstance(entry, dict)
    }
    return templates, settings


def load_store(path: Path) -> InMemoryTemplateStore:
    templates, settings = read_store_file(path)
    return InMemoryTemplateStore(templates, settings)


def reload_store(store: InMemoryTemplateStore, path: Path) -> None:
    """Replace the store contents from ``path`` without notifying listeners."""
    templates, settings = read_store_file(path)
    with store._lock:
        store.templates[:] = templates
        store.settings.clear()
        store.settings.update(settings)
