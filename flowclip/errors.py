"""Exception types raised across FlowClip."""

from __future__ import annotations


class FlowClipError(Exception):
    """Base class for FlowClip failures."""


class NotConfiguredError(FlowClipError):
    """Raised when no LLM credential is available."""

    def __init__(self, message: str = "OpenAI API key not configured") -> None:
        super().__init__(message)


class NotFoundError(FlowClipError):
    """Raised when a referenced clipboard item or session does not exist."""


class ExternalCallError(FlowClipError):
    """Search, vision or LLM transport failure."""


class MalformedOutputError(FlowClipError):
    """An LLM response could not be decoded into the expected JSON shape."""


class ValidationError(FlowClipError):
    """A workflow result is missing required fields."""


class UnsupportedTaskError(FlowClipError, ValueError):
    """Task type has no registered implementation."""
