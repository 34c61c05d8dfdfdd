from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Iterator

from .cards import CardRegistry
from .changes import SyncSnapshot, build_snapshot, detect_changes
from .errors import SyncError
from .identity import identity_of
from .models import ChangeKind, ChangeRecord
from .store import TemplateStore

logger = logging.getLogger(__name__)

MIN_INTERVAL_S = 0.01


class SyncScheduler:
    """Polls the store while the panel is visible and applies small diffs.

    Each tick diffs the live collection against the last baseline, applies the
    changes to the card registry and then rebuilds the baseline. A tick that
    fires while another is still applying is skipped.
    """

    def __init__(
        self, store: TemplateStore, registry: CardRegistry, *, interval_s: float = 2.0
    ) -> None:
        self._store = store
        self._registry = registry
        self.interval_s = interval_s
        self._baseline: SyncSnapshot = {}
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._tick_lock = threading.RLock()
        self.last_error: SyncError | None = None
        self.ticks_failed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def baseline(self) -> SyncSnapshot:
        return dict(self._baseline)

    def rebaseline(self) -> None:
        self._baseline = build_snapshot(list(self._store.templates), self._store)

    def clear_baseline(self) -> None:
        self._baseline = {}

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold off ticks while the caller mutates the registry."""
        with self._tick_lock:
            yield

    def tick(self) -> list[ChangeRecord] | None:
        """Run one sync pass; ``None`` means it was skipped as overlapping."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("template sync tick still running, skipping")
            return None
        try:
            return self._apply_tick()
        except Exception as exc:
            self.ticks_failed += 1
            self.last_error = SyncError(f"template sync tick failed: {exc}")
            logger.exception("template sync tick failed", exc_info=exc)
            return []
        finally:
            self._tick_lock.release()

    def _apply_tick(self) -> list[ChangeRecord]:
        records = list(self._store.templates)
        changes = detect_changes(records, self._baseline, self._store)
        if not changes:
            return changes
        logger.debug("detected %d template changes", len(changes))
        with self._registry.lock:
            added = False
            for change in changes:
                if change.kind is ChangeKind.ADDED and change.record is not None:
                    enabled = change.new.enabled if change.new is not None else True
                    self._registry.add(change.identity, change.record, enabled=enabled)
                    added = True
                elif change.kind is ChangeKind.REMOVED:
                    self._registry.remove(change.identity)
                elif change.record is not None:
                    enabled = change.new.enabled if change.new is not None else None
                    self._registry.update_fields(
                        change.identity, change.changed_fields, change.record, enabled=enabled
                    )
            if added:
                self._registry.reorder([identity_of(record) for record in records])
        self._baseline = build_snapshot(records, self._store)
        return changes

    def start(self) -> None:
        if self.running:
            return
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop,), name="template-sync", daemon=True
        )
        self._thread.start()

    def _run(self, stop: threading.Event) -> None:
        interval_s = max(MIN_INTERVAL_S, self.interval_s)
        while not stop.wait(interval_s):
            self.tick()

    def stop(self, timeout: float | None = None) -> None:
        thread = self._thread
        self._thread = None
        self._stop.set()
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout if timeout is not None else max(1.0, self.interval_s * 2))
