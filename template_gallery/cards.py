from __future__ import annotations

import dataclasses
import logging
import threading
from collections import OrderedDict
from concurrent.futures import CancelledError, Future
from typing import Any

from .changes import snapshot_of
from .models import (
    THUMBNAIL_FAILED,
    THUMBNAIL_READY,
    WATCHED_FIELDS,
    CardHandle,
    TemplateRecord,
)
from .presentation import Presenter
from .thumbnails import ThumbnailCache

logger = logging.getLogger(__name__)

UNNAMED_TEMPLATE = "Unnamed Template"
DEFAULT_COORDS = (0, 0, 0, 0)
TILE_SIZE = 1000


def format_coords(coords: tuple[int, ...] | list[int] | None) -> str:
    tx, ty, px, py = tuple(coords) if coords and len(coords) == 4 else DEFAULT_COORDS
    return f"Tile: {tx},{ty} Pixel: {px},{py}"


def format_pixel_count(pixel_count: int | None) -> str:
    return f"{int(pixel_count or 0):,} pixels"


def template_dimensions(record: TemplateRecord) -> tuple[int, int] | None:
    source = record.file
    width = getattr(source, "width", None)
    height = getattr(source, "height", None)
    if width and height:
        return int(width), int(height)
    if not record.chunked:
        return None
    min_x = min_y = None
    max_x = max_y = None
    for key in record.chunked:
        parts = str(key).split(",")
        if len(parts) != 4:
            continue
        try:
            tile_x, tile_y, pixel_x, pixel_y = (int(part) for part in parts)
        except ValueError:
            continue
        abs_x = tile_x * TILE_SIZE + pixel_x
        abs_y = tile_y * TILE_SIZE + pixel_y
        min_x = abs_x if min_x is None else min(min_x, abs_x)
        min_y = abs_y if min_y is None else min(min_y, abs_y)
        max_x = abs_x if max_x is None else max(max_x, abs_x)
        max_y = abs_y if max_y is None else max(max_y, abs_y)
    if min_x is None or min_y is None or max_x is None or max_y is None:
        return None
    return max_x - min_x + 1, max_y - min_y + 1


def card_fields(record: TemplateRecord, enabled: bool) -> dict[str, Any]:
    dimensions = template_dimensions(record)
    return {
        "display_name": record.display_name or UNNAMED_TEMPLATE,
        "coords": format_coords(record.coords),
        "pixel_count": format_pixel_count(record.pixel_count),
        "enabled": enabled,
        "dimensions": f"{dimensions[0]}×{dimensions[1]}" if dimensions else "Unknown",
    }


class CardRegistry:
    """Identity -> rendered card, kept in display order.

    ``lock`` is re-entrant; reconciliation holds it across a whole pass.
    """

    def __init__(self, presenter: Presenter, thumbnails: ThumbnailCache) -> None:
        self._presenter = presenter
        self._thumbnails = thumbnails
        self._cards: OrderedDict[str, CardHandle] = OrderedDict()
        self.lock = threading.RLock()

    def __len__(self) -> int:
        with self.lock:
            return len(self._cards)

    def __contains__(self, identity: object) -> bool:
        with self.lock:
            return identity in self._cards

    def has(self, identity: str) -> bool:
        return identity in self

    def get(self, identity: str) -> CardHandle | None:
        with self.lock:
            return self._cards.get(identity)

    def order(self) -> list[str]:
        with self.lock:
            return list(self._cards)

    def handles(self) -> list[CardHandle]:
        with self.lock:
            return list(self._cards.values())

    def add(self, identity: str, record: TemplateRecord, *, enabled: bool = True) -> CardHandle:
        with self.lock:
            existing = self._cards.get(identity)
            if existing is not None:
                self.update_fields(identity, list(WATCHED_FIELDS), record, enabled=enabled)
                return existing
            handle = CardHandle(
                identity=identity, record=record, snapshot=snapshot_of(record, enabled)
            )
            self._cards[identity] = handle
            handle.element = self._presenter.render_new(handle, card_fields(record, enabled))
            future = self._thumbnails.get(identity, record.file)
        future.add_done_callback(lambda done: self._attach_thumbnail(handle, done))
        return handle

    def _attach_thumbnail(self, handle: CardHandle, future: Future[Any]) -> None:
        try:
            image = future.result()
        except CancelledError:
            return
        except Exception as exc:
            logger.warning("thumbnail lookup failed for %s", handle.identity, exc_info=exc)
            image = None
        with self.lock:
            if self._cards.get(handle.identity) is not handle:
                logger.debug("dropping thumbnail for detached card %s", handle.identity)
                return
            handle.thumbnail = image
            handle.thumbnail_state = THUMBNAIL_READY if image is not None else THUMBNAIL_FAILED
            self._presenter.thumbnail_ready(handle, image)

    def refresh_thumbnail(self, identity: str) -> Future[Any] | None:
        with self.lock:
            handle = self._cards.get(identity)
            if handle is None:
                return None
            future = self._thumbnails.update(identity, handle.record.file)
        future.add_done_callback(lambda done: self._attach_thumbnail(handle, done))
        return future

    def update_fields(
        self,
        identity: str,
        changed_fields: list[str],
        record: TemplateRecord,
        *,
        enabled: bool | None = None,
    ) -> list[str]:
        """Apply the named fields that really differ; return the ones applied."""
        with self.lock:
            handle = self._cards.get(identity)
            if handle is None:
                return []
            if enabled is None:
                enabled = handle.snapshot.enabled
            current = snapshot_of(record, enabled)
            applied = [
                name
                for name in changed_fields
                if name in WATCHED_FIELDS and handle.snapshot.value(name) != current.value(name)
            ]
            handle.record = record
            if not applied:
                return []
            handle.snapshot = dataclasses.replace(
                handle.snapshot, **{name: current.value(name) for name in applied}
            )
            fields = card_fields(record, handle.snapshot.enabled)
            self._presenter.apply_update(handle, {name: fields[name] for name in applied})
            return applied

    def remove(self, identity: str) -> bool:
        with self.lock:
            handle = self._cards.pop(identity, None)
            if handle is None:
                return False
            self._presenter.remove(handle)
        self._thumbnails.invalidate(identity)
        return True

    def reorder(self, ordered_identities: list[str]) -> bool:
        """Move cards into ``ordered_identities`` order; unknown ids are ignored."""
        with self.lock:
            current = list(self._cards)
            wanted = [i for i in dict.fromkeys(ordered_identities) if i in self._cards]
            placed = set(wanted)
            wanted.extend(i for i in current if i not in placed)
            if wanted == current:
                return False
            for identity in wanted:
                self._cards.move_to_end(identity)
            self._presenter.reorder([self._cards[i] for i in wanted])
            return True

    def clear(self) -> int:
        with self.lock:
            count = len(self._cards)
            self._cards.clear()
        return count
