"""
PotionPlay Custom Exceptions

Provides the domain-specific exception hierarchy for the PotionPlay
interaction controller. Adapters raise these; component boundaries catch
them and convert them into result objects so that nothing escapes an
event-loop callback.

Exception Hierarchy:
    PotionPlayError (base)
    ├── ConfigurationError
    ├── RelayError
    ├── CameraError
    ├── RecognitionError
    ├── SynthesisError
    ├── PlaybackError
    └── InvalidTransitionError
"""

from typing import Any, Optional


class PotionPlayError(Exception):
    """Base exception for all PotionPlay errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional error context
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(PotionPlayError):
    """Error in configuration file, settings or credentials.

    Raised when configuration validation fails, required settings are missing,
    or an API credential is not available.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


# =============================================================================
# Transport Errors
# =============================================================================

class RelayError(PotionPlayError):
    """An HTTP relay endpoint failed or returned an unusable response."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if endpoint:
            details["endpoint"] = endpoint
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status = status


# =============================================================================
# Device Errors
# =============================================================================

class CameraError(PotionPlayError):
    """The webcam could not be opened, read or encoded."""

    def __init__(self, message: str, device_index: Optional[int] = None) -> None:
        details: dict[str, Any] = {}
        if device_index is not None:
            details["device_index"] = device_index
        super().__init__(message, details)
        self.device_index = device_index


class RecognitionError(PotionPlayError):
    """Speech recognition session failed.

    The ``kind`` mirrors the error codes of continuous recognizers:
    ``no-speech``, ``network``, ``not-allowed``, ``not-supported``, ``aborted``.
    """

    def __init__(self, message: str, kind: str = "unknown") -> None:
        super().__init__(message, {"kind": kind})
        self.kind = kind


# =============================================================================
# Speech Output Errors
# =============================================================================

class SynthesisError(PotionPlayError):
    """A text-to-speech request produced no audio."""

    def __init__(self, message: str, voice: Optional[str] = None) -> None:
        details: dict[str, Any] = {}
        if voice:
            details["voice"] = voice
        super().__init__(message, details)
        self.voice = voice


class PlaybackError(PotionPlayError):
    """Synthesized audio could not be decoded or played."""

    def __init__(self, message: str, mime_type: Optional[str] = None) -> None:
        details: dict[str, Any] = {}
        if mime_type:
            details["mime_type"] = mime_type
        super().__init__(message, details)
        self.mime_type = mime_type


# =============================================================================
# State Machine Errors
# =============================================================================

class InvalidTransitionError(PotionPlayError):
    """An event is not allowed in the current interaction phase."""

    def __init__(self, message: str, phase: Optional[str] = None, event: Optional[str] = None) -> None:
        details: dict[str, Any] = {}
        if phase:
            details["phase"] = phase
        if event:
            details["event"] = event
        super().__init__(message, details)
        self.phase = phase
        self.event = event


# Allow importing without prefix for common cases
Error = PotionPlayError
