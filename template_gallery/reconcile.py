from __future__ import annotations

import logging
from collections.abc import Iterable

from .cards import CardRegistry
from .changes import diff_fields, snapshot_of
from .identity import identity_of
from .models import ReconcileResult, TemplateRecord
from .store import TemplateStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Full pass making the card registry mirror the store's membership and order."""

    def __init__(self, registry: CardRegistry, store: TemplateStore) -> None:
        self._registry = registry
        self._store = store

    def reconcile(self, collection: Iterable[TemplateRecord] | None = None) -> ReconcileResult:
        records = list(self._store.templates if collection is None else collection)
        with self._registry.lock:
            ordered: list[tuple[str, TemplateRecord]] = []
            seen: set[str] = set()
            for record in records:
                identity = identity_of(record)
                if identity in seen:
                    logger.warning("duplicate template identity %s, keeping first", identity)
                    continue
                seen.add(identity)
                ordered.append((identity, record))

            # Plan everything before touching the registry.
            to_remove = [identity for identity in self._registry.order() if identity not in seen]
            to_add: list[tuple[str, TemplateRecord, bool]] = []
            to_update: list[tuple[str, list[str], TemplateRecord, bool]] = []
            for identity, record in ordered:
                enabled = self._store.is_enabled(identity)
                handle = self._registry.get(identity)
                if handle is None:
                    to_add.append((identity, record, enabled))
                    continue
                changed = diff_fields(handle.snapshot, snapshot_of(record, enabled))
                to_update.append((identity, changed, record, enabled))

            result = ReconcileResult()
            for identity in to_remove:
                if self._registry.remove(identity):
                    result.removed.append(identity)
            for identity, record, enabled in to_add:
                self._registry.add(identity, record, enabled=enabled)
                result.added.append(identity)
            for identity, changed, record, enabled in to_update:
                if self._registry.update_fields(identity, changed, record, enabled=enabled):
                    result.updated.append(identity)
            result.reordered = self._registry.reorder([identity for identity, _ in ordered])

        if result.mutations:
            logger.info(
                "gallery reconcile: %d templates, %d new, %d updated, %d removed",
                len(ordered),
                len(result.added),
                len(result.updated),
                len(result.removed),
            )
        return result
