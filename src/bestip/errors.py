"""Exceptions that abort a pipeline run."""

from __future__ import annotations

from typing import Optional

from .results import ErrorKind


class BestIPError(Exception):
    """Base exception for bestip"""


class StorageUnavailableError(BestIPError):
    """Raised when the key-value store is not configured or cannot be reached"""

    kind = ErrorKind.STORAGE_UNAVAILABLE

    def __init__(self, message: str = "Key-value store is not available"):
        super().__init__(message)


class PipelineStepError(BestIPError):
    """Wraps an unhandled failure with the pipeline step it happened in."""

    def __init__(self, step: str, message: str, cause: Optional[BaseException] = None):
        self.step = step
        self.message = message
        self.cause = cause
        super().__init__(f"{step}: {message}")

    def to_dict(self) -> dict:
        return {"success": False, "step": self.step, "error": self.message}
