"""
Error taxonomy for the conversion pipeline.

Every failure the core can report is one of the ErrorKind values. Strategy
failures are raised as ConversionError subclasses and translated into tier
decisions by the degradation controller; only terminal failures reach the
caller, and then as a failed RenderOutcome rather than an exception.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories reported by the core."""

    PARSE_DEGRADED = "parse_degraded"
    UNKNOWN_TEMPLATE = "unknown_template"
    INVALID_REQUEST = "invalid_request"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    ENGINE_TIMEOUT = "engine_timeout"
    ENGINE_RENDER_ERROR = "engine_render_error"
    NETWORK_UNAVAILABLE = "network_unavailable"
    REMOTE_QUOTA_EXCEEDED = "remote_quota_exceeded"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    OVERALL_DEADLINE_EXCEEDED = "overall_deadline_exceeded"
    ALL_TIERS_EXHAUSTED = "all_tiers_exhausted"

    @property
    def retryable(self) -> bool:
        """False when the caller's input or configuration was at fault."""
        return self not in (ErrorKind.UNKNOWN_TEMPLATE, ErrorKind.INVALID_REQUEST)


class ConversionError(Exception):
    """Base class for all pipeline errors."""

    kind = ErrorKind.ENGINE_RENDER_ERROR

    def __init__(self, message: str, tier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tier = tier

    def __str__(self) -> str:
        if self.tier:
            return f"[{self.tier}] {self.message}"
        return self.message


class UnknownTemplate(ConversionError, KeyError):
    kind = ErrorKind.UNKNOWN_TEMPLATE

    def __str__(self) -> str:
        return ConversionError.__str__(self)


class InvalidRequest(ConversionError, ValueError):
    kind = ErrorKind.INVALID_REQUEST


class EngineUnavailable(ConversionError):
    """The engine cannot start in this execution environment."""

    kind = ErrorKind.ENGINE_UNAVAILABLE


class EngineTimeout(ConversionError):
    kind = ErrorKind.ENGINE_TIMEOUT


class EngineRenderError(ConversionError):
    """The engine started but produced no valid document."""

    kind = ErrorKind.ENGINE_RENDER_ERROR


class NetworkUnavailable(ConversionError):
    kind = ErrorKind.NETWORK_UNAVAILABLE


class RemoteQuotaExceeded(ConversionError):
    kind = ErrorKind.REMOTE_QUOTA_EXCEEDED


class ResourceExhausted(ConversionError):
    """No engine slot could be leased within the allowed wait."""

    kind = ErrorKind.RESOURCE_EXHAUSTED

    def __init__(self, message: str, tier: Optional[str] = None, rejected: bool = False):
        super().__init__(message, tier)
        # True when the pool refused outright instead of waiting
        self.rejected = rejected


class OverallDeadlineExceeded(ConversionError):
    kind = ErrorKind.OVERALL_DEADLINE_EXCEEDED
