"""Workflow definition use cases."""

from app.application.use_cases.workflows.workflow_operations import WorkflowService

__all__ = ["WorkflowService"]
