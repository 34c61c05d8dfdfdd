from __future__ import annotations

from pathlib import Path

import pytest

from gallery_helpers import RecordingPresenter


@pytest.fixture(autouse=True)
def _isolate_gallery_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TEMPLATE_GALLERY_CONFIG", str(tmp_path / "config.json"))
    for name in (
        "TEMPLATE_GALLERY_SYNC_INTERVAL_S",
        "TEMPLATE_GALLERY_THUMBNAIL_SIZE",
        "TEMPLATE_GALLERY_MAX_SOURCE_DIMENSION",
        "TEMPLATE_GALLERY_MAX_IMAGE_PIXELS",
        "TEMPLATE_GALLERY_THUMBNAIL_WORKERS",
        "TEMPLATE_GALLERY_THUMBNAIL_DEDUPE",
        "TEMPLATE_GALLERY_REFRESH_DELAY_MS",
        "TEMPLATE_GALLERY_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()
