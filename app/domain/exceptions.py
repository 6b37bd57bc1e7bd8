"""Domain exceptions for the Flowline application.

Defines domain-level exceptions that represent business rule violations.
These exceptions are independent of infrastructure concerns. Presentation
layer maps them to HTTP responses in exception handlers.
"""

from typing import Any


class FlowlineException(Exception):
    """Base exception for all Flowline application errors.

    Presentation layer maps these to HTTP responses using message,
    error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. node_id, resource_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error bodies and run error records."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(FlowlineException):
    """Raised when input validation fails (e.g. invalid format or range)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class ResourceNotFoundException(FlowlineException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'workflow', 'workflow_execution').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class WorkflowActivationException(FlowlineException):
    """Raised when enabling a workflow whose definition has validation errors.

    details["errors"] carries every error issue, not just the first.
    """

    def __init__(self, workflow_id: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(
            f"Workflow {workflow_id} cannot be activated: {len(errors)} validation error(s)",
            "ACTIVATION_ERROR",
            {"workflow_id": workflow_id, "errors": errors},
        )


class WorkflowValidationException(FlowlineException):
    """Raised when a structural edit would leave an active workflow invalid."""

    def __init__(self, workflow_id: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(
            f"Workflow {workflow_id} is active and the change does not validate",
            "WORKFLOW_VALIDATION_ERROR",
            {"workflow_id": workflow_id, "errors": errors},
        )


class WorkflowNotEnabledException(FlowlineException):
    """Raised when a trigger targets a workflow that is disabled or not active."""

    def __init__(self, workflow_id: str, status: str) -> None:
        super().__init__(
            f"Workflow {workflow_id} is not enabled (status: {status})",
            "WORKFLOW_NOT_ENABLED",
            {"workflow_id": workflow_id, "status": status},
        )


class ExecutionStateException(FlowlineException):
    """Raised when an operation is not allowed in the run's current status."""

    def __init__(self, execution_id: str, status: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} execution {execution_id} in status {status}",
            "EXECUTION_STATE_CONFLICT",
            {"execution_id": execution_id, "status": status, "operation": operation},
        )


class ExecutionConflictException(FlowlineException):
    """Raised when a run was saved by another writer since it was loaded."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(
            f"Execution {execution_id} was modified concurrently; reload and retry",
            "EXECUTION_CONFLICT",
            {"execution_id": execution_id},
        )


class NodeExecutionError(FlowlineException):
    """Raised by node handlers; consumed by the engine's retry and on_error policy."""

    def __init__(
        self,
        node_id: str,
        message: str,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.node_id = node_id
        self.retryable = retryable
        super().__init__(message, "NODE_EXECUTION_ERROR", {"node_id": node_id, **(details or {})})


class RunTimeoutError(FlowlineException):
    """Raised when a run exceeds settings.timeout_ms."""

    def __init__(self, execution_id: str, timeout_ms: int, node_id: str | None = None) -> None:
        self.node_id = node_id
        super().__init__(
            f"Execution timed out after {timeout_ms}ms",
            "RUN_TIMEOUT",
            {"execution_id": execution_id, "timeout_ms": timeout_ms, "node_id": node_id},
        )


class RepositoryException(FlowlineException):
    """Raised when the persistence layer fails."""

    def __init__(self, message: str = "Persistence failure", operation: str | None = None) -> None:
        details = {"operation": operation} if operation else {}
        super().__init__(message, "REPOSITORY_ERROR", details)


class WebhookSignatureException(FlowlineException):
    """Raised when a webhook trigger's HMAC signature is missing or wrong."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message, "WEBHOOK_SIGNATURE_INVALID")


class SqlNotConfiguredException(FlowlineException):
    """Raised when an operation requires a SQL database but none is configured."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
