"""
Exception hierarchy for the review core.

Parse failures are deliberately absent: malformed model output decodes
to "no value" and never raises.
"""

from __future__ import annotations


class SessionSightError(Exception):
    """Base class for every error raised by this package."""


class ReviewValidationError(SessionSightError):
    """A review submission was rejected before any state change."""


class ExtractionNotFoundError(SessionSightError):
    """No extraction exists for the requested id."""

    def __init__(self, extraction_id: str) -> None:
        super().__init__(f"Extraction {extraction_id} not found")
        self.extraction_id = extraction_id


class ConcurrencyConflictError(SessionSightError):
    """Another review changed the extraction after it was read."""

    def __init__(self, extraction_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Extraction {extraction_id} was modified by another reviewer "
            f"(expected version {expected_version}, found {actual_version}). "
            "Re-fetch the current review status and resubmit."
        )
        self.extraction_id = extraction_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ModelInvocationError(SessionSightError):
    """The model provider call failed at the transport or API level."""


class ReExtractionError(SessionSightError):
    """The risk second-opinion pass produced no usable response."""
