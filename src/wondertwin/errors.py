"""
Error types for WonderTwin.

Every failure the fleet controller, registry, and scenario engine can report
is a subclass of :class:`WonderTwinError`, so CLI commands can catch one type
and print a single ``Error: ...`` line.
"""

from __future__ import annotations


class WonderTwinError(Exception):
    """Base exception for all WonderTwin errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(WonderTwinError):
    """
    Raised when an input document is malformed.

    Examples:
    - Manifest twin without binary or version
    - Scenario without name or steps
    - License key with a bad check
    - Catalog that cannot be decoded
    """

    pass


class NotFoundError(WonderTwinError):
    """Raised for an unknown twin, version, registry, or admin resource."""

    pass


class TierLockedError(WonderTwinError):
    """Raised when a non-free twin version is installed without a license."""

    pass


class UnsupportedPlatformError(WonderTwinError):
    """Raised when a release has no binary for the host platform."""

    pass


class DownloadError(WonderTwinError):
    """Raised when a binary or catalog download fails."""

    pass


class ChecksumMismatchError(WonderTwinError):
    """Raised when a downloaded binary does not match its catalog checksum."""

    pass


class StateParseError(WonderTwinError):
    """Raised by a twin's state contract when a state body is ill-formed."""

    pass


class SetupError(WonderTwinError):
    """Raised when a scenario's reset/seed preamble fails."""

    pass


class TemplateError(WonderTwinError):
    """Raised when a ``{{ ... }}`` template expression cannot be expanded."""

    pass


class CaptureError(WonderTwinError):
    """Raised when a scenario capture finds no JSONPath match."""

    pass


class AssertionFailure(WonderTwinError):
    """Raised when a scenario step assertion does not hold."""

    pass
