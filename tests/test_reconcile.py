from __future__ import annotations

from collections.abc import Iterator

import pytest

from gallery_helpers import RecordingPresenter, make_record
from template_gallery.cards import CardRegistry
from template_gallery.reconcile import Reconciler
from template_gallery.store import InMemoryTemplateStore
from template_gallery.thumbnails import ENTRY_ABSENT, ThumbnailCache


@pytest.fixture
def cache() -> Iterator[ThumbnailCache]:
    cache = ThumbnailCache()
    yield cache
    cache.close()


def _setup(
    presenter: RecordingPresenter, cache: ThumbnailCache, *authors: str
) -> tuple[InMemoryTemplateStore, CardRegistry, Reconciler]:
    store = InMemoryTemplateStore([make_record(1, author) for author in authors])
    registry = CardRegistry(presenter, cache)
    return store, registry, Reconciler(registry, store)


def test_first_pass_adds_every_template_in_order(
    presenter: RecordingPresenter, cache: ThumbnailCache
) -> None:
    _, registry, reconciler = _setup(presenter, cache, "a", "b", "c")
    result = reconciler.reconcile()
    assert result.added == ["1 a", "1 b", "1 c"]
    assert result.updated == [] and result.removed == []
    assert result.reordered is False
    assert registry.order() == ["1 a", "1 b", "1 c"]


def test_second_pass_is_idempotent(presenter: RecordingPresenter, cache: ThumbnailCache) -> None:
    _, _, reconciler = _setup(presenter, cache, "a", "b", "c")
    reconciler.reconcile()
    events_before = list(presenter.events)

    result = reconciler.reconcile()

    assert result.mutations == 0
    assert presenter.events == events_before


def test_order_follows_store_order(presenter: RecordingPresenter, cache: ThumbnailCache) -> None:
    store, registry, reconciler = _setup(presenter, cache, "A", "B", "C")
    reconciler.reconcile()
    by_id = {record.author_id: record for record in store.templates}
    store.templates[:] = [by_id["C"], by_id["A"], by_id["B"]]

    result = reconciler.reconcile()

    assert result.reordered is True
    assert result.added == []
    assert registry.order() == ["1 C", "1 A", "1 B"]
    assert presenter.kinds().count("render") == 3


def test_removed_templates_are_evicted_with_their_thumbnails(
    presenter: RecordingPresenter, cache: ThumbnailCache
) -> None:
    store, registry, reconciler = _setup(presenter, cache, "a", "b")
    reconciler.reconcile()
    cache.get("1 b", store.templates[1].file).result(timeout=5)

    store.templates.pop()
    result = reconciler.reconcile()

    assert result.removed == ["1 b"]
    assert registry.order() == ["1 a"]
    assert cache.entry_state("1 b") == ENTRY_ABSENT


def test_changed_fields_are_updated_in_place(
    presenter: RecordingPresenter, cache: ThumbnailCache
) -> None:
    store, registry, reconciler = _setup(presenter, cache, "a")
    reconciler.reconcile()
    handle = registry.get("1 a")
    store.templates[0].display_name = "Renamed"
    store.settings["1 a"] = {"enabled": False}

    result = reconciler.reconcile()

    assert result.updated == ["1 a"]
    assert registry.get("1 a") is handle
    assert presenter.events[-1] == (
        "update",
        "1 a",
        {"display_name": "Renamed", "enabled": False},
    )


def test_mixed_pass(presenter: RecordingPresenter, cache: ThumbnailCache) -> None:
    store, registry, reconciler = _setup(presenter, cache, "a", "b", "c")
    reconciler.reconcile()
    store.templates[:] = [make_record(1, "d"), store.templates[2], store.templates[0]]
    store.templates[1].pixel_count = 5

    result = reconciler.reconcile()

    assert result.added == ["1 d"]
    assert result.removed == ["1 b"]
    assert result.updated == ["1 c"]
    assert registry.order() == ["1 d", "1 c", "1 a"]


def test_empty_collection_clears_registry(
    presenter: RecordingPresenter, cache: ThumbnailCache
) -> None:
    store, registry, reconciler = _setup(presenter, cache, "a", "b")
    reconciler.reconcile()
    store.templates.clear()
    result = reconciler.reconcile()
    assert sorted(result.removed) == ["1 a", "1 b"]
    assert len(registry) == 0
