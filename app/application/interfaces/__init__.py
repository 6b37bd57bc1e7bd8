"""Application interfaces (ports): repository and service protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from app.infrastructure or app.api.
"""

from app.application.interfaces.repositories import (
    IExecutionLogRepository,
    IWorkflowExecutionRepository,
    IWorkflowRepository,
    IWorkflowTemplateRepository,
)
from app.application.interfaces.services import (
    IActionHandler,
    ICapabilityRegistry,
    IMetricsRecorder,
    INotificationChannel,
    IRunDispatcher,
    ITemplateRenderer,
    IWorkflowEngine,
)

__all__ = [
    "IActionHandler",
    "ICapabilityRegistry",
    "IExecutionLogRepository",
    "IMetricsRecorder",
    "INotificationChannel",
    "IRunDispatcher",
    "ITemplateRenderer",
    "IWorkflowEngine",
    "IWorkflowExecutionRepository",
    "IWorkflowRepository",
    "IWorkflowTemplateRepository",
]
