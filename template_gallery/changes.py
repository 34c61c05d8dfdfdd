from __future__ import annotations

from collections.abc import Iterable, Mapping

from .identity import identity_of
from .models import WATCHED_FIELDS, ChangeKind, ChangeRecord, FieldSnapshot, TemplateRecord
from .store import TemplateStore

SyncSnapshot = dict[str, FieldSnapshot]


def snapshot_of(record: TemplateRecord, enabled: bool) -> FieldSnapshot:
    coords = record.coords
    return FieldSnapshot(
        display_name=record.display_name,
        coords=tuple(coords) if coords is not None else None,
        pixel_count=record.pixel_count,
        enabled=enabled,
    )


def diff_fields(old: FieldSnapshot, new: FieldSnapshot) -> list[str]:
    return [name for name in WATCHED_FIELDS if old.value(name) != new.value(name)]


def build_snapshot(collection: Iterable[TemplateRecord], store: TemplateStore) -> SyncSnapshot:
    snapshot: SyncSnapshot = {}
    for record in collection:
        identity = identity_of(record)
        if identity in snapshot:
            continue
        snapshot[identity] = snapshot_of(record, store.is_enabled(identity))
    return snapshot


def detect_changes(
    collection: Iterable[TemplateRecord],
    previous: Mapping[str, FieldSnapshot],
    store: TemplateStore,
) -> list[ChangeRecord]:
    """Classify differences between ``collection`` and the ``previous`` baseline.

    Added and modified records come out in collection order, removals last.
    ``previous`` is only read; the caller rebuilds the baseline once the
    changes have been applied.
    """
    changes: list[ChangeRecord] = []
    seen: set[str] = set()
    for record in collection:
        identity = identity_of(record)
        if identity in seen:
            continue
        seen.add(identity)
        current = snapshot_of(record, store.is_enabled(identity))
        old = previous.get(identity)
        if old is None:
            changes.append(
                ChangeRecord(kind=ChangeKind.ADDED, identity=identity, record=record, new=current)
            )
            continue
        changed = diff_fields(old, current)
        if changed:
            changes.append(
                ChangeRecord(
                    kind=ChangeKind.MODIFIED,
                    identity=identity,
                    record=record,
                    changed_fields=changed,
                    old=old,
                    new=current,
                )
            )
    for identity, old in previous.items():
        if identity not in seen:
            changes.append(ChangeRecord(kind=ChangeKind.REMOVED, identity=identity, old=old))
    return changes
