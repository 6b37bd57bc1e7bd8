"""Application services: graph validation, condition evaluation, metrics aggregation, built-in templates."""

from app.application.services.condition_evaluator import (
    evaluate_condition,
    evaluate_conditions,
    resolve_field,
)
from app.application.services.metrics_aggregator import MetricsAggregator, compute_metrics
from app.application.services.template_catalog import get_system_template, system_templates
from app.application.services.workflow_validator import WorkflowValidator, validate_workflow

__all__ = [
    "MetricsAggregator",
    "WorkflowValidator",
    "compute_metrics",
    "evaluate_condition",
    "evaluate_conditions",
    "get_system_template",
    "resolve_field",
    "system_templates",
    "validate_workflow",
]
