from __future__ import annotations

FAILURE_FORMAT = "format"
FAILURE_SECURITY = "security"
FAILURE_INVALID_STATE = "invalid_state"
FAILURE_UNKNOWN = "unknown"


class GalleryError(Exception):
    pass


class GenerationError(GalleryError):
    """Thumbnail derivation failed; cached as a failure sentinel."""

    def __init__(self, message: str, *, kind: str = FAILURE_UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


class IdentityResolutionError(GalleryError):
    pass


class SyncError(GalleryError):
    pass


class StoreOperationError(GalleryError):
    """The template store rejected a remove/toggle request."""
