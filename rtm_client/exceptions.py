"""Custom exception hierarchy for rtm-client.

This module provides a structured exception hierarchy that enables:
- Typed outcomes for every remote call (service, transport, auth)
- Rich error context for debugging
- User-friendly notices in the TUI
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rtm_client.models import TaskRef


class RtmClientError(Exception):
    """Base exception for all rtm-client errors.

    Attributes:
        message: Human-readable error description.
        context: Additional context for debugging.
        timestamp: When the error occurred.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now()
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthFailureReason(Enum):
    """Why a handshake step failed."""

    TRANSPORT = "transport"  # Network failure talking to the service
    SERVICE = "service"  # Service rejected the call
    FROB_REJECTED = "frob_rejected"  # User denied access or the frob expired
    INVALID_STATE = "invalid_state"  # Step called out of order
    CANCELLED = "cancelled"  # Session restarted while the step was in flight


class AuthError(RtmClientError):
    """Raised when the authentication handshake fails.

    The caller should restart the handshake from the beginning.
    """

    def __init__(
        self,
        message: str = "Authentication failed",
        *,
        reason: AuthFailureReason = AuthFailureReason.SERVICE,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        ctx["reason"] = reason.value
        self.reason = reason
        super().__init__(message, context=ctx, cause=cause)


class NotAuthenticatedError(RtmClientError):
    """Raised when a call needs a valid credential but none is available."""

    def __init__(
        self,
        operation: str = "unknown",
        *,
        message: str = "Not authenticated",
        cause: Exception | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(
            message,
            context={"attempted_operation": operation},
            cause=cause,
        )


# =============================================================================
# Remote Call Errors
# =============================================================================


class ServiceError(RtmClientError):
    """Raised when the service rejects a call with an error envelope.

    Never retried automatically. The message is shown to the user verbatim.
    """

    def __init__(
        self,
        code: int,
        message: str,
        *,
        method: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code = code
        self.method = method
        ctx: dict[str, Any] = {"code": code}
        if method:
            ctx["method"] = method
        super().__init__(message, context=ctx, cause=cause)


class TransportError(RtmClientError):
    """Raised when the service could not be reached (network or timeout)."""

    def __init__(
        self,
        message: str = "Network error talking to Remember The Milk",
        *,
        method: str | None = None,
        timeout: float | None = None,
        attempts: int | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if method:
            ctx["method"] = method
        if timeout is not None:
            ctx["timeout_seconds"] = timeout
        if attempts is not None:
            ctx["attempts"] = attempts
        self.method = method
        self.attempts = attempts
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Model Errors
# =============================================================================


class ModelInconsistencyError(RtmClientError):
    """Raised when an undo or reconciliation step finds a task missing or changed."""

    def __init__(
        self,
        message: str = "Task no longer matches the expected state",
        *,
        ref: TaskRef | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if ref is not None:
            ctx["list_id"] = ref.list_id
            ctx["task_id"] = ref.task_id
        self.ref = ref
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(RtmClientError):
    """Base class for configuration-related errors."""

    pass


class ConfigLoadError(ConfigError):
    """Raised when configuration file fails to load."""

    def __init__(
        self,
        message: str = "Failed to load configuration",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(
        self,
        message: str = "Configuration validation failed",
        *,
        field: str | None = None,
        value: Any = None,
        expected: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = str(value)[:100]  # Truncate long values
        if expected:
            ctx["expected"] = expected
        super().__init__(message, context=ctx, cause=cause)


class ConfigSaveError(ConfigError):
    """Raised when configuration fails to save."""

    def __init__(
        self,
        message: str = "Failed to save configuration",
        *,
        file_path: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or {}
        if file_path:
            ctx["file_path"] = file_path
        super().__init__(message, context=ctx, cause=cause)


# =============================================================================
# Error Registry for Categorization
# =============================================================================


@dataclass
class ErrorStats:
    """Track error statistics for monitoring."""

    total_count: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    recent_errors: list[tuple[datetime, str, str]] = field(default_factory=list)
    max_recent: int = 100

    def record(self, error: Exception) -> None:
        """Record an error occurrence."""
        self.total_count += 1
        type_name = type(error).__name__
        self.by_type[type_name] = self.by_type.get(type_name, 0) + 1

        self.recent_errors.append((datetime.now(), type_name, str(error)[:200]))
        if len(self.recent_errors) > self.max_recent:
            self.recent_errors.pop(0)


# Global error stats tracker
error_stats = ErrorStats()


def record_error(error: Exception) -> None:
    """Record an error to global stats."""
    error_stats.record(error)
