"""Fixed-size thumbnail derivation with a per-identity memo.

Each template identity is derived at most once: the first ``get`` schedules
the work on a thread pool, later calls return the cached image (or the cached
failure) straight away until the entry is invalidated.
"""

from __future__ import annotations

import functools
import io
import logging
import math
import os
import threading
import warnings
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

from PIL import Image, UnidentifiedImageError

from .config import GalleryConfig
from .errors import (
    FAILURE_FORMAT,
    FAILURE_INVALID_STATE,
    FAILURE_SECURITY,
    FAILURE_UNKNOWN,
    GenerationError,
)

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = 100
MAX_SOURCE_DIMENSION = 10000
# Nearest-neighbour keeps pixel-art edges crisp.
RESAMPLING_FILTER = Image.Resampling.NEAREST

ENTRY_ABSENT = "absent"
ENTRY_READY = "ready"
ENTRY_FAILED = "failed"

ImageDecoder = Callable[[Any], Image.Image]

_FAILED = object()
_PIXEL_LIMIT_LOCK = threading.Lock()


def open_image(source: Any, *, max_pixels: int | None = None) -> Image.Image:
    """Open ``source`` lazily, checking size against ``max_pixels`` only.

    Pillow's process-wide decompression-bomb ceiling is swapped for
    ``max_pixels`` (``None`` disables it) while the header is read.
    """
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, (bytes, bytearray)):
        fp: Any = io.BytesIO(bytes(source))
    elif isinstance(source, (str, os.PathLike)):
        fp = source
    else:
        raise TypeError(f"not a valid image source: {type(source).__name__}")
    with _PIXEL_LIMIT_LOCK, warnings.catch_warnings():
        warnings.simplefilter("ignore", Image.DecompressionBombWarning)
        previous = Image.MAX_IMAGE_PIXELS
        Image.MAX_IMAGE_PIXELS = max_pixels
        try:
            return Image.open(fp)
        finally:
            Image.MAX_IMAGE_PIXELS = previous


def decode_image(source: Any, *, max_pixels: int | None = None) -> Image.Image:
    image = open_image(source, max_pixels=max_pixels)
    image.load()
    return image


def classify_failure(exc: BaseException) -> str:
    if isinstance(exc, GenerationError):
        return exc.kind
    if isinstance(exc, PermissionError):
        return FAILURE_SECURITY
    if isinstance(exc, Image.DecompressionBombError):
        return FAILURE_INVALID_STATE
    if isinstance(exc, (UnidentifiedImageError, TypeError, SyntaxError)):
        return FAILURE_FORMAT
    if isinstance(exc, (ValueError, OSError)):
        return FAILURE_INVALID_STATE
    return FAILURE_UNKNOWN


def _valid_dimension(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def fit_box(width: float, height: float, size: int) -> tuple[int, int, int, int]:
    """Return ``(draw_w, draw_h, offset_x, offset_y)`` centring the source in a square."""
    if width > height:
        draw_w = float(size)
        draw_h = (height / width) * size
    else:
        draw_h = float(size)
        draw_w = (width / height) * size
    if not (_valid_dimension(draw_w) and _valid_dimension(draw_h)):
        raise GenerationError(
            f"invalid scaled dimensions: {draw_w}x{draw_h}", kind=FAILURE_INVALID_STATE
        )
    scaled_w = max(1, round(draw_w))
    scaled_h = max(1, round(draw_h))
    return scaled_w, scaled_h, (size - scaled_w) // 2, (size - scaled_h) // 2


def render_thumbnail(
    image: Image.Image,
    *,
    size: int = THUMBNAIL_SIZE,
    max_source_dimension: int = MAX_SOURCE_DIMENSION,
    label: str = "template",
) -> Image.Image:
    width = getattr(image, "width", None)
    height = getattr(image, "height", None)
    if not (_valid_dimension(width) and _valid_dimension(height)):
        raise GenerationError(
            f"invalid source dimensions: {width}x{height}", kind=FAILURE_INVALID_STATE
        )
    if width > max_source_dimension or height > max_source_dimension:
        logger.warning(
            "template %s has very large dimensions %sx%s, thumbnail may be slow",
            label,
            width,
            height,
        )
    draw_w, draw_h, offset_x, offset_y = fit_box(width, height, size)
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    scaled = image.convert("RGBA").resize((draw_w, draw_h), resample=RESAMPLING_FILTER)
    canvas.paste(scaled, (offset_x, offset_y))
    return canvas


def _resolved(value: Image.Image | None) -> Future[Image.Image | None]:
    future: Future[Image.Image | None] = Future()
    future.set_result(value)
    return future


class ThumbnailCache:
    def __init__(
        self,
        *,
        decoder: ImageDecoder | None = None,
        size: int = THUMBNAIL_SIZE,
        max_source_dimension: int = MAX_SOURCE_DIMENSION,
        max_workers: int = 4,
        dedupe: bool = True,
        max_image_pixels: int | None = None,
    ) -> None:
        self._decoder = decoder or functools.partial(decode_image, max_pixels=max_image_pixels)
        self.size = size
        self.max_source_dimension = max_source_dimension
        self._max_workers = max(1, max_workers)
        self._dedupe = dedupe
        self._lock = threading.Lock()
        self._entries: dict[str, Any] = {}
        self._inflight: dict[str, Future[Image.Image | None]] = {}
        # Latest request token per identity; stale completions are discarded.
        self._tokens: dict[str, object] = {}
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_config(
        cls, config: GalleryConfig, *, decoder: ImageDecoder | None = None
    ) -> ThumbnailCache:
        return cls(
            decoder=decoder,
            size=config.thumbnail_size,
            max_source_dimension=config.max_source_dimension,
            max_workers=config.thumbnail_workers,
            dedupe=config.thumbnail_dedupe,
            max_image_pixels=config.max_image_pixels or None,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entry_state(self, identity: str) -> str:
        with self._lock:
            if identity not in self._entries:
                return ENTRY_ABSENT
            return ENTRY_FAILED if self._entries[identity] is _FAILED else ENTRY_READY

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="thumbnail"
            )
        return self._executor

    def get(self, identity: str, source: Any) -> Future[Image.Image | None]:
        """Return a future for the thumbnail of ``identity``.

        Resolves to ``None`` when derivation failed or there is no source.
        Failures are cached and never retried until ``invalidate``.
        """
        with self._lock:
            if identity in self._entries:
                entry = self._entries[identity]
                return _resolved(None if entry is _FAILED else entry)
            if self._dedupe:
                pending = self._inflight.get(identity)
                if pending is not None:
                    return pending
            token = object()
            self._tokens[identity] = token
            future = self._pool().submit(self._generate, identity, source, token)
            if self._dedupe:
                self._inflight[identity] = future
        return future

    def _generate(self, identity: str, source: Any, token: object) -> Image.Image | None:
        result: Image.Image | None = None
        if source is None:
            logger.warning("template %s has no source image for thumbnail generation", identity)
        else:
            try:
                image = self._decoder(source)
                result = render_thumbnail(
                    image,
                    size=self.size,
                    max_source_dimension=self.max_source_dimension,
                    label=identity,
                )
                logger.debug(
                    "generated thumbnail for template %s (%sx%s)",
                    identity,
                    image.width,
                    image.height,
                )
            except Exception as exc:
                kind = classify_failure(exc)
                logger.exception("thumbnail generation failed for %s (%s)", identity, kind)
        with self._lock:
            if self._tokens.get(identity) is token:
                self._entries[identity] = _FAILED if result is None else result
                del self._tokens[identity]
                self._inflight.pop(identity, None)
        return result

    def update(self, identity: str, source: Any) -> Future[Image.Image | None]:
        self.invalidate(identity)
        return self.get(identity, source)

    def invalidate(self, identity: str | None = None) -> None:
        with self._lock:
            if identity is None:
                count = len(self._entries)
                self._entries.clear()
                self._inflight.clear()
                self._tokens.clear()
                logger.debug("cleared thumbnail cache (%d items)", count)
                return
            self._inflight.pop(identity, None)
            self._tokens.pop(identity, None)
            if self._entries.pop(identity, None) is not None:
                logger.debug("cleared thumbnail cache for template %s", identity)

    def preload(self, items: Iterable[tuple[str, Any]]) -> dict[str, Image.Image | None]:
        futures = {identity: self.get(identity, source) for identity, source in items}
        if not futures:
            return {}
        wait(list(futures.values()))
        results: dict[str, Image.Image | None] = {}
        for identity, future in futures.items():
            try:
                results[identity] = future.result()
            except Exception as exc:
                logger.warning("thumbnail preload failed for %s", identity, exc_info=exc)
                results[identity] = None
        return results

    def close(self) -> None:
        with self._lock:
            executor = self._executor
            self._executor = None
        self.invalidate()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
