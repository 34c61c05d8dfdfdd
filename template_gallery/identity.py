from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from typing import Any

from .errors import IdentityResolutionError

logger = logging.getLogger(__name__)

IDENTITY_SEPARATOR = " "
LEGACY_ID_SEPARATOR = "_"
DEFAULT_SORT_ID = "0"
FALLBACK_NAME_LIMIT = 10

_NAME_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9]")


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _now_ms() -> int:
    return int(time.time() * 1000)


def identity_of(record: Any, *, strict: bool = False) -> str:
    """Return the "<sort_id> <author_id>" key for a template record.

    Records without canonical fields fall back to the legacy ``id`` field and
    then to the display name. Name-derived identities are not stable across
    renames; pass ``strict=True`` to raise instead.
    """
    if record is None or isinstance(record, (str, bytes, int, float)):
        if strict:
            raise IdentityResolutionError(f"invalid template record: {record!r}")
        logger.error("invalid template record for identity: %r", record)
        return f"invalid_{_now_ms()}"

    sort_id = _field(record, "sort_id")
    author_id = _field(record, "author_id")
    if sort_id is not None and author_id is not None:
        return f"{sort_id}{IDENTITY_SEPARATOR}{author_id}"

    legacy_id = _field(record, "id")
    if legacy_id:
        id_text = str(legacy_id)
        if IDENTITY_SEPARATOR in id_text:
            return id_text
        parts = id_text.split(LEGACY_ID_SEPARATOR)
        if len(parts) >= 2:
            return f"{parts[0]}{IDENTITY_SEPARATOR}{parts[1]}"
        return f"{DEFAULT_SORT_ID}{IDENTITY_SEPARATOR}{id_text}"

    if strict:
        raise IdentityResolutionError("template record has no identity fields")
    display_name = _field(record, "display_name")
    if display_name:
        fallback = _NAME_SANITIZE_RE.sub("", str(display_name))[:FALLBACK_NAME_LIMIT]
    else:
        fallback = ""
    if not fallback:
        fallback = f"unknown_{_now_ms()}"
    logger.warning(
        "template record missing identity fields, using fallback identity %r", fallback
    )
    return f"{DEFAULT_SORT_ID}{IDENTITY_SEPARATOR}{fallback}"
