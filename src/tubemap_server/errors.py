"""Failure taxonomy shared by the pipeline stages and the HTTP layer."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping


class PipelineError(Exception):
    """Base class for failures that end a request with a typed error."""

    kind = "PipelineError"
    status_code = 500

    def __init__(self, message: str, *, request_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id

    def as_dict(self) -> dict:
        payload = {"error": self.kind, "detail": self.message}
        if self.request_id:
            payload["requestId"] = self.request_id
        return payload


class InvalidRequest(PipelineError):
    kind = "InvalidRequest"
    status_code = 400

    @classmethod
    def from_validation_errors(cls, errors: Iterable[Mapping[str, Any]]) -> "InvalidRequest":
        """Summarise pydantic-style error entries (``loc``/``msg``) into one message."""

        parts = []
        for error in errors:
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            message = error.get("msg", "invalid value")
            parts.append(f"{location}: {message}" if location else message)
        return cls("; ".join(parts) or "Invalid request body")


class ExtractionFailed(PipelineError):
    """The external tool exited non-zero or did not write its declared output."""

    kind = "ExtractionFailed"
    status_code = 502


class ExtractionTimeout(PipelineError):
    kind = "ExtractionTimeout"
    status_code = 504


class AnnotationNotFound(PipelineError):
    kind = "AnnotationNotFound"
    status_code = 502


class AlignmentFileNotFound(PipelineError):
    kind = "AlignmentFileNotFound"
    status_code = 502


class AlignmentConversionFailed(PipelineError):
    kind = "AlignmentConversionFailed"
    status_code = 502


class IOFailure(PipelineError):
    """A transient or reference file could not be read or decoded."""

    kind = "IOFailure"
    status_code = 500

    @classmethod
    def from_os_error(cls, path: Path, exc: OSError) -> "IOFailure":
        return cls(f"Unable to read {path}: {exc.strerror or exc}")


__all__ = [
    "PipelineError",
    "InvalidRequest",
    "ExtractionFailed",
    "ExtractionTimeout",
    "AnnotationNotFound",
    "AlignmentFileNotFound",
    "AlignmentConversionFailed",
    "IOFailure",
]
