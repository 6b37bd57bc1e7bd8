"""Capability registry: action handlers and notification channels by name.

External modules (tickets, assets, email providers) register their
capabilities here; the engine only resolves them by key.
"""

from __future__ import annotations

import logging
from typing import Any

from app.application.dtos.execution import CapabilityResult
from app.application.interfaces.services import IActionHandler, INotificationChannel
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class LogOnlyNotificationChannel:
    """INotificationChannel that logs instead of delivering.

    Used for the built-in `email` and `log` channels when no provider is
    registered.
    """

    def __init__(self, name: str = "log") -> None:
        self.name = name

    async def send(
        self,
        recipients: list[str],
        subject: str | None,
        body: str | None,
        context: dict[str, Any],
    ) -> CapabilityResult:
        recipients = list(recipients or [])
        subject_preview = (subject or "")[:80]
        if not recipients:
            logger.info("Notify[%s]: no recipients, skipping send (subject=%r)", self.name, subject_preview)
            return CapabilityResult(ok=True, output={"delivered": 0})
        logger.info(
            "Notify[%s]: would send to %d recipients (subject=%r)",
            self.name,
            len(recipients),
            subject_preview,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Notify[%s] recipients: %s", self.name, recipients)
            logger.debug("Notify[%s] body (first 500 chars): %s", self.name, (body or "")[:500])
        return CapabilityResult(ok=True, output={"delivered": len(recipients)})


async def set_variable_action(params: dict[str, Any], context: dict[str, Any]) -> CapabilityResult:
    """Built-in `workflow.set_variable`: returns params.value as the node output."""
    if "value" not in params:
        return CapabilityResult(ok=False, message="set_variable requires a 'value' param")
    return CapabilityResult(ok=True, output=params["value"])


async def log_action(params: dict[str, Any], context: dict[str, Any]) -> CapabilityResult:
    """Built-in `workflow.log`: logs params.message."""
    logger.info("Workflow log action: %s", params.get("message"))
    return CapabilityResult(ok=True, output={"logged": True})


class CapabilityRegistry:
    """In-process registry (implements ICapabilityRegistry)."""

    def __init__(self) -> None:
        self._actions: dict[tuple[str, str], IActionHandler] = {}
        self._channels: dict[str, INotificationChannel] = {}

    def register_action(self, module: str, action: str, handler: IActionHandler) -> None:
        key = (module, action)
        if key in self._actions:
            logger.warning("Replacing action handler %s.%s", module, action)
        self._actions[key] = handler

    def register_channel(self, channel: str, impl: INotificationChannel) -> None:
        self._channels[channel] = impl

    def get_action(self, module: str, action: str) -> IActionHandler | None:
        return self._actions.get((module, action))

    def get_channel(self, channel: str) -> INotificationChannel | None:
        return self._channels.get(channel)

    def actions(self) -> list[tuple[str, str]]:
        return sorted(self._actions)

    def channels(self) -> list[str]:
        return sorted(self._channels)


def build_default_registry() -> CapabilityRegistry:
    """Registry with the built-in workflow actions and log-only channels."""
    registry = CapabilityRegistry()
    registry.register_action("workflow", "set_variable", set_variable_action)
    registry.register_action("workflow", "log", log_action)
    registry.register_channel("email", LogOnlyNotificationChannel("email"))
    registry.register_channel("log", LogOnlyNotificationChannel("log"))
    return registry
