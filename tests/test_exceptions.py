"""Tests for the exception hierarchy."""

from rtm_client.exceptions import (
    AuthError,
    AuthFailureReason,
    ConfigError,
    ConfigLoadError,
    ConfigSaveError,
    ConfigValidationError,
    ErrorStats,
    ModelInconsistencyError,
    NotAuthenticatedError,
    RtmClientError,
    ServiceError,
    TransportError,
)
from rtm_client.models import TaskRef


class TestHierarchy:
    """Every error shares the base class."""

    def test_all_subclass_base(self):
        """All errors can be caught as RtmClientError."""
        for cls in (
            AuthError,
            NotAuthenticatedError,
            ServiceError,
            TransportError,
            ModelInconsistencyError,
            ConfigError,
        ):
            assert issubclass(cls, RtmClientError)

    def test_config_errors(self):
        """Config errors share ConfigError."""
        for cls in (ConfigLoadError, ConfigSaveError, ConfigValidationError):
            assert issubclass(cls, ConfigError)


class TestContext:
    """Tests for error context and formatting."""

    def test_base_str_with_context(self):
        """Context is appended to the message."""
        error = RtmClientError("Boom", context={"key": "value"})
        assert str(error) == "Boom (key=value)"

    def test_base_str_without_context(self):
        """Without context only the message is shown."""
        assert str(RtmClientError("Boom")) == "Boom"

    def test_service_error(self):
        """ServiceError keeps code, message and method."""
        error = ServiceError(340, "Task not found", method="rtm.tasks.complete")
        assert error.code == 340
        assert error.message == "Task not found"
        assert error.context == {"code": 340, "method": "rtm.tasks.complete"}

    def test_auth_error_reason(self):
        """AuthError records its failure reason."""
        error = AuthError("Denied", reason=AuthFailureReason.FROB_REJECTED)
        assert error.reason == AuthFailureReason.FROB_REJECTED
        assert error.context["reason"] == "frob_rejected"

    def test_not_authenticated_operation(self):
        """NotAuthenticatedError names the attempted operation."""
        error = NotAuthenticatedError("rtm.lists.getList")
        assert error.operation == "rtm.lists.getList"
        assert error.message == "Not authenticated"

    def test_transport_error_context(self):
        """TransportError records method, timeout and attempts."""
        error = TransportError("slow", method="m", timeout=2.0, attempts=3)
        assert error.context == {"method": "m", "timeout_seconds": 2.0, "attempts": 3}

    def test_model_inconsistency_ref(self):
        """ModelInconsistencyError records the task it concerns."""
        error = ModelInconsistencyError(ref=TaskRef("L1", "s1", "t1"))
        assert error.ref == TaskRef("L1", "s1", "t1")
        assert error.context["task_id"] == "t1"

    def test_cause_kept(self):
        """The underlying exception is kept."""
        cause = ValueError("inner")
        error = TransportError(cause=cause)
        assert error.cause is cause


class TestErrorStats:
    """Tests for error statistics."""

    def test_record(self):
        """Errors are counted by type."""
        stats = ErrorStats()
        stats.record(ServiceError(1, "a"))
        stats.record(ServiceError(2, "b"))
        stats.record(TransportError())
        assert stats.total_count == 3
        assert stats.by_type == {"ServiceError": 2, "TransportError": 1}

    def test_recent_bounded(self):
        """Recent errors are capped."""
        stats = ErrorStats(max_recent=2)
        for i in range(5):
            stats.record(ValueError(str(i)))
        assert len(stats.recent_errors) == 2
        assert stats.recent_errors[-1][2] == "4"
