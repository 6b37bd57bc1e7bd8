"""Execution (run) use cases."""

from app.application.use_cases.executions.execution_operations import (
    ExecutionService,
    sign_webhook_body,
    verify_webhook_signature,
)

__all__ = ["ExecutionService", "sign_webhook_body", "verify_webhook_signature"]
