"""Workflow template: a reusable graph that new workflows are created from.

System templates ship with the service and are visible to every tenant;
custom templates belong to one tenant.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.workflow import TriggerConfig, WorkflowEdge, WorkflowNode
from app.domain.enums import WorkflowCategory


@dataclass
class WorkflowTemplate:
    id: str
    tenant_id: str | None
    name: str
    description: str = ""
    category: str = WorkflowCategory.CUSTOM.value
    icon: str | None = None
    tags: list[str] = field(default_factory=list)
    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    is_system: bool = False
    usage_count: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def visible_to(self, tenant_id: str) -> bool:
        return self.is_system or self.tenant_id == tenant_id

    def instantiate_nodes(self, overrides: dict[str, dict[str, Any]] | None = None) -> list[WorkflowNode]:
        """Deep copies of the template nodes, with per-node config keys overridden.

        Overrides for node ids the template does not have are ignored.
        """
        nodes = copy.deepcopy(self.nodes)
        for node in nodes:
            changes = (overrides or {}).get(node.id)
            if changes:
                node.config = {**(node.config or {}), **changes}
        return nodes
