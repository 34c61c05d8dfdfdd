from __future__ import annotations

import logging

import pytest

from template_gallery.errors import IdentityResolutionError
from template_gallery.identity import identity_of
from template_gallery.models import TemplateRecord


def test_identity_joins_sort_and_author_ids() -> None:
    record = TemplateRecord(sort_id=0, author_id="abc123")
    assert identity_of(record) == "0 abc123"
    assert identity_of(record) == identity_of(TemplateRecord(sort_id=0, author_id="abc123"))


def test_identity_accepts_mapping_records() -> None:
    assert identity_of({"sort_id": 7, "author_id": "xyz"}) == "7 xyz"


@pytest.mark.parametrize(
    ("legacy_id", "expected"),
    [
        ("3 author", "3 author"),
        ("3_author", "3 author"),
        ("3_author_extra", "3 author"),
        ("solo", "0 solo"),
    ],
)
def test_identity_falls_back_to_legacy_id(legacy_id: str, expected: str) -> None:
    assert identity_of(TemplateRecord(id=legacy_id)) == expected


def test_identity_from_display_name_warns(caplog: pytest.LogCaptureFixture) -> None:
    record = TemplateRecord(display_name="My Template #1 Extended")
    with caplog.at_level(logging.WARNING, logger="template_gallery.identity"):
        identity = identity_of(record)
    assert identity == "0 MyTemplate"
    assert "fallback identity" in caplog.text


def test_identity_without_any_fields_uses_time_placeholder() -> None:
    identity = identity_of(TemplateRecord())
    assert identity.startswith("0 unknown_")
    assert identity.removeprefix("0 unknown_").isdigit()


def test_identity_strict_mode_raises() -> None:
    with pytest.raises(IdentityResolutionError):
        identity_of(TemplateRecord(display_name="Nameless"), strict=True)
    with pytest.raises(IdentityResolutionError):
        identity_of(None, strict=True)


def test_identity_of_invalid_record_is_placeholder() -> None:
    assert identity_of(None).startswith("invalid_")
