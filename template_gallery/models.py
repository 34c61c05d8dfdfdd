from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

WATCHED_FIELDS = ("display_name", "coords", "pixel_count", "enabled")

THUMBNAIL_PENDING = "pending"
THUMBNAIL_READY = "ready"
THUMBNAIL_FAILED = "failed"


@dataclass
class TemplateRecord:
    sort_id: int | str | None = None
    author_id: str | None = None
    id: str | None = None
    display_name: str | None = None
    coords: tuple[int, int, int, int] | list[int] | None = None
    pixel_count: int | None = None
    # Path, raw bytes or a PIL image; handed to the image decoder as-is.
    file: Any = None
    # "tx,ty,px,py" -> tile payload; only the keys are read here.
    chunked: dict[str, Any] | None = None


@dataclass(frozen=True)
class FieldSnapshot:
    display_name: str | None
    coords: tuple[int, ...] | None
    pixel_count: int | None
    enabled: bool

    def value(self, name: str) -> Any:
        return getattr(self, name)


class ChangeKind(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class ChangeRecord:
    kind: ChangeKind
    identity: str
    record: TemplateRecord | None = None
    changed_fields: list[str] = field(default_factory=list)
    old: FieldSnapshot | None = None
    new: FieldSnapshot | None = None


@dataclass
class CardHandle:
    identity: str
    record: TemplateRecord
    snapshot: FieldSnapshot
    # Whatever the presentation layer returned from render_new.
    element: Any = None
    thumbnail: Any = None
    thumbnail_state: str = THUMBNAIL_PENDING


@dataclass
class ReconcileResult:
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    reordered: bool = False

    @property
    def mutations(self) -> int:
        return len(self.added) + len(self.updated) + len(self.removed) + int(self.reordered)
