"""Failure categories of the receipt intake pipeline.

Malformed model output is never one of these: the field extractor recovers
it locally. Every other failure is raised here and converted into a user
notice by the conversation service.
"""

from __future__ import annotations


class IntakeError(Exception):
    """Base class for all intake pipeline failures."""


class MediaUnavailable(IntakeError):
    """The channel could not resolve the media id or the download failed."""


class RasterizationFailed(IntakeError):
    """A scanned PDF could not be converted to an image."""


class ExtractionServiceError(IntakeError):
    """The hosted extraction service call itself failed."""


class UnsupportedAttachment(IntakeError):
    """The attachment MIME type has no extraction path."""

    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported attachment type: {mime_type or 'unknown'}")
        self.mime_type = mime_type


class DownstreamError(IntakeError):
    """The bookkeeping sink rejected the submission or was unreachable."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigMissing(IntakeError):
    """A required credential is absent; the related capability is degraded."""
