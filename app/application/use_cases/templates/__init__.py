"""Workflow template use cases."""

from app.application.use_cases.templates.template_operations import WorkflowTemplateService

__all__ = ["WorkflowTemplateService"]
