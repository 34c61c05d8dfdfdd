from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

from .cards import UNNAMED_TEMPLATE, CardRegistry, format_coords
from .config import GalleryConfig
from .errors import StoreOperationError
from .identity import identity_of
from .models import ReconcileResult, TemplateRecord
from .presentation import NullPresenter, Presenter
from .reconcile import Reconciler
from .scheduler import SyncScheduler
from .store import TemplateStore
from .thumbnails import ImageDecoder, ThumbnailCache

logger = logging.getLogger(__name__)

MAX_TILE_COORD = 2047
MAX_PIXEL_COORD = 999


def count_label(count: int) -> str:
    return "1 template" if count == 1 else f"{count} templates"


def coordinate_errors(coords: Any) -> list[str]:
    if not isinstance(coords, (list, tuple)) or len(coords) != 4:
        return ["invalid coordinate format"]
    if not all(isinstance(value, int) and not isinstance(value, bool) for value in coords):
        return ["invalid coordinate values"]
    tile_x, tile_y, pixel_x, pixel_y = coords
    errors: list[str] = []
    if not 0 <= tile_x <= MAX_TILE_COORD:
        errors.append(f"Tile X ({tile_x}) out of range 0-{MAX_TILE_COORD}")
    if not 0 <= tile_y <= MAX_TILE_COORD:
        errors.append(f"Tile Y ({tile_y}) out of range 0-{MAX_TILE_COORD}")
    if not 0 <= pixel_x <= MAX_PIXEL_COORD:
        errors.append(f"Pixel X ({pixel_x}) out of range 0-{MAX_PIXEL_COORD}")
    if not 0 <= pixel_y <= MAX_PIXEL_COORD:
        errors.append(f"Pixel Y ({pixel_y}) out of range 0-{MAX_PIXEL_COORD}")
    return errors


class TemplateGallery:
    """Panel controller tying the thumbnail cache, card registry and sync loop.

    Cards only exist while the panel is shown; ``hide`` stops the scheduler,
    drops every card and clears the thumbnail cache.
    """

    def __init__(
        self,
        store: TemplateStore,
        presenter: Presenter | None = None,
        *,
        config: GalleryConfig | None = None,
        decoder: ImageDecoder | None = None,
        thumbnails: ThumbnailCache | None = None,
    ) -> None:
        self.config = config or GalleryConfig()
        self.store = store
        self.presenter: Presenter = presenter or NullPresenter()
        self.thumbnails = thumbnails or ThumbnailCache.from_config(self.config, decoder=decoder)
        self.registry = CardRegistry(self.presenter, self.thumbnails)
        self.reconciler = Reconciler(self.registry, store)
        self.scheduler = SyncScheduler(store, self.registry, interval_s=self.config.sync_interval_s)
        self.visible = False
        self._lock = threading.Lock()
        self._refresh_timer: threading.Timer | None = None
        subscribe = getattr(store, "subscribe", None)
        self._unsubscribe: Callable[[], None] | None = (
            subscribe(self._on_store_event) if callable(subscribe) else None
        )

    def __enter__(self) -> TemplateGallery:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def show(self) -> None:
        if self.visible:
            return
        self.visible = True
        self.refresh()
        self.scheduler.start()
        logger.info("template gallery shown")

    def hide(self) -> None:
        if not self.visible:
            return
        self.visible = False
        self._cancel_refresh_timer()
        self.scheduler.stop()
        with self.scheduler.exclusive():
            dropped = self.registry.clear()
            self.scheduler.clear_baseline()
        self.thumbnails.invalidate()
        self.presenter.close()
        logger.info("template gallery hidden (%d cards dropped)", dropped)

    def close(self) -> None:
        self.hide()
        self.thumbnails.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def refresh(self) -> ReconcileResult | None:
        if not self.visible:
            return None
        with self.scheduler.exclusive():
            # hide() may have run while this call waited for the lock.
            if not self.visible:
                return None
            result = self.reconciler.reconcile()
            self.scheduler.rebaseline()
        count = len(self.store.templates)
        self.presenter.summary(count_label(count), empty=count == 0)
        return result

    def force_refresh(self) -> ReconcileResult | None:
        result = self.refresh()
        if result is not None:
            logger.info("template gallery manually refreshed")
        return result

    def _on_store_event(self, event: str, identity: str) -> None:
        if not self.visible:
            return
        delay_ms = self.config.refresh_delay_ms
        logger.debug("store %s %s, scheduling gallery refresh", event, identity)
        if delay_ms <= 0:
            self.refresh()
            return
        with self._lock:
            existing = self._refresh_timer
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(delay_ms / 1000.0, self._delayed_refresh)
            timer.daemon = True
            self._refresh_timer = timer
            timer.start()

    def _delayed_refresh(self) -> None:
        with self._lock:
            self._refresh_timer = None
        try:
            self.refresh()
        except Exception as exc:
            logger.exception("automatic gallery refresh failed", exc_info=exc)

    def _cancel_refresh_timer(self) -> None:
        with self._lock:
            timer = self._refresh_timer
            self._refresh_timer = None
        if timer is not None:
            timer.cancel()

    def _find(self, identity: str) -> TemplateRecord | None:
        for record in list(self.store.templates):
            if identity_of(record) == identity:
                return record
        return None

    def _template_name(
        self,
        identity: str,
        record: TemplateRecord | None,
        settings: dict[str, Any] | None,
    ) -> str:
        if settings and settings.get("name"):
            return str(settings["name"])
        if record is not None and record.display_name:
            return record.display_name
        return UNNAMED_TEMPLATE

    def _forward(self, operation: Callable[[], bool], failure: str) -> None:
        try:
            ok = operation()
        except StoreOperationError:
            raise
        except Exception as exc:
            raise StoreOperationError(f"{failure}: {exc}") from exc
        if not ok:
            raise StoreOperationError(f"{failure} - operation was rejected")

    def toggle(self, identity: str) -> bool:
        settings = self.store.get_settings(identity)
        if settings is None:
            logger.error("template %s not found in settings", identity)
            self.presenter.error("Template not found in system")
            return False
        record = self._find(identity)
        name = self._template_name(identity, record, settings)
        new_state = not self.store.is_enabled(identity)
        try:
            self._forward(
                lambda: self.store.set_enabled(identity, new_state),
                f'Failed to toggle template "{name}"',
            )
        except StoreOperationError as exc:
            logger.warning("toggle rejected for %s: %s", identity, exc)
            self.presenter.error(str(exc))
            return False
        if record is not None:
            self.registry.update_fields(identity, ["enabled"], record, enabled=new_state)
        state = "enabled" if new_state else "disabled"
        logger.info("template %s (%s) %s", identity, name, state)
        self.presenter.status(f"{name} {state}")
        return True

    def remove(self, identity: str) -> bool:
        record = self._find(identity)
        settings = self.store.get_settings(identity)
        name = self._template_name(identity, record, settings)
        if record is None:
            logger.warning("template %s no longer exists", identity)
            self.presenter.status(f'Template "{name}" was already removed')
            return False
        try:
            self._forward(
                lambda: self.store.remove_by_identity(identity),
                f'Failed to remove template "{name}"',
            )
        except StoreOperationError as exc:
            logger.warning("remove rejected for %s: %s", identity, exc)
            self.presenter.error(str(exc))
            return False
        self.thumbnails.invalidate(identity)
        self.presenter.status(f'Template "{name}" removed')
        logger.info("removed template %s (%s)", identity, name)
        self.refresh()
        return True

    def navigate(self, identity: str) -> bool:
        record = self._find(identity)
        if record is None:
            self.presenter.error("Template not found in system")
            return False
        name = self._template_name(identity, record, self.store.get_settings(identity))
        if record.coords is None:
            self.presenter.error(f'Template "{name}" has no coordinates set')
            return False
        errors = coordinate_errors(record.coords)
        if errors:
            logger.error("cannot navigate to %s: %s", identity, "; ".join(errors))
            if errors[0].startswith("invalid"):
                self.presenter.error(f'Template "{name}" has {errors[0]}')
            else:
                self.presenter.error(f'Template "{name}" coordinates are out of valid range')
            return False
        coords = tuple(record.coords)
        self.presenter.navigate(coords)  # type: ignore[arg-type]
        self.presenter.status(f'Navigated to template "{name}" at {format_coords(coords)}')
        self.hide()
        return True

    def update_thumbnail(self, identity: str) -> Future[Any] | None:
        future = self.registry.refresh_thumbnail(identity)
        if future is not None:
            return future
        record = self._find(identity)
        if record is None:
            return None
        return self.thumbnails.update(identity, record.file)
