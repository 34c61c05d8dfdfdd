import json
from pathlib import Path

import pytest

from template_gallery.config import (
    GalleryConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
)


def test_defaults_without_config_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.json")
    assert cfg == GalleryConfig()
    assert cfg.sync_interval_s == 2.0
    assert cfg.thumbnail_size == 100
    assert cfg.max_source_dimension == 10000
    assert cfg.max_image_pixels == 0
    assert cfg.thumbnail_dedupe is True
    assert cfg.refresh_delay_ms == 100


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="must be an object"):
        read_config_file(config_path)


def test_read_config_file_treats_blank_or_missing_file_as_empty(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    assert read_config_file(config_path) == {}
    config_path.write_text("  \n")
    assert read_config_file(config_path) == {}


def test_load_config_warns_and_ignores_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{broken")
    with pytest.warns(RuntimeWarning, match="Ignoring config file: invalid config json"):
        assert load_config(config_path) == GalleryConfig()


def test_load_config_warns_on_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text('"thumbnail_size"')
    with pytest.warns(RuntimeWarning, match="must be an object"):
        assert load_config(config_path) == GalleryConfig()


def test_load_config_reads_file_values(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "thumbnail_size": 64,
                "sync_interval_s": 0.5,
                "max_image_pixels": 5000,
                "log_level": "debug",
            }
        )
    )

    cfg = load_config(config_path)

    assert cfg.thumbnail_size == 64
    assert cfg.sync_interval_s == 0.5
    assert cfg.max_image_pixels == 5000
    assert cfg.log_level == "DEBUG"


def test_config_path_honours_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv("TEMPLATE_GALLERY_CONFIG", str(target))
    assert get_config_path() == target


def test_env_overrides_beat_file_values(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"thumbnail_workers": 2, "thumbnail_dedupe": True}))
    monkeypatch.setenv("TEMPLATE_GALLERY_THUMBNAIL_WORKERS", "8")
    monkeypatch.setenv("TEMPLATE_GALLERY_THUMBNAIL_DEDUPE", "off")

    assert get_env_overrides() == {"thumbnail_workers": "8", "thumbnail_dedupe": "off"}
    cfg = load_config(config_path)
    assert cfg.thumbnail_workers == 8
    assert cfg.thumbnail_dedupe is False


def test_invalid_int_warns_and_keeps_default(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"refresh_delay_ms": "soon"}))
    with pytest.warns(RuntimeWarning, match="Invalid int for refresh_delay_ms"):
        cfg = load_config(config_path)
    assert cfg.refresh_delay_ms == 100


def test_non_positive_interval_warns(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TEMPLATE_GALLERY_SYNC_INTERVAL_S", "0")
    with pytest.warns(RuntimeWarning, match="Non-positive value for sync_interval_s"):
        cfg = load_config(tmp_path / "missing.json")
    assert cfg.sync_interval_s == 2.0


def test_bool_coercion_from_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"thumbnail_dedupe": 0}))
    assert load_config(config_path).thumbnail_dedupe is False

    config_path.write_text(json.dumps({"thumbnail_dedupe": [1]}))
    with pytest.warns(RuntimeWarning, match="Invalid bool for thumbnail_dedupe"):
        assert load_config(config_path).thumbnail_dedupe is True


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"not_a_setting": 1}))
    cfg = load_config(config_path)
    assert not hasattr(cfg, "not_a_setting")
