"""Node config templating: {{ ... }} placeholders rendered with Jinja2."""

from __future__ import annotations

import re
from typing import Any

from jinja2 import Environment, Template, Undefined
from jinja2.nativetypes import NativeEnvironment

# A string that is exactly one expression keeps the native type of the value.
_SINGLE_EXPRESSION = re.compile(r"^\s*\{\{(?:(?!\}\}).)*\}\}\s*$", re.DOTALL)


def _has_template_syntax(value: str) -> bool:
    return "{{" in value or "{%" in value


class WorkflowTemplateRenderer:
    """Renders node config (implements ITemplateRenderer).

    Render context is the run context plus `item` (alias of the trigger
    payload). Missing names render as empty; syntax errors raise
    jinja2.TemplateError, which the engine records as a node failure.
    """

    def __init__(self) -> None:
        self._env = Environment(autoescape=False)
        self._native_env = NativeEnvironment(autoescape=False)
        self._compiled: dict[tuple[str, bool], Template] = {}

    def _compile(self, source: str, native: bool) -> Template:
        key = (source, native)
        if key not in self._compiled:
            env = self._native_env if native else self._env
            self._compiled[key] = env.from_string(source)
        return self._compiled[key]

    def build_context(self, context: dict[str, Any]) -> dict[str, Any]:
        trigger = context.get("trigger") or {}
        return {
            "trigger": trigger,
            "item": trigger,
            "variables": context.get("variables") or {},
            "nodes": context.get("nodes") or {},
        }

    def render_string(self, source: str, context: dict[str, Any]) -> Any:
        if not _has_template_syntax(source):
            return source
        native = bool(_SINGLE_EXPRESSION.match(source))
        result = self._compile(source, native).render(**self.build_context(context))
        if isinstance(result, Undefined):
            return None
        return result

    def render_value(self, value: Any, context: dict[str, Any]) -> Any:
        """Render strings recursively inside lists and dicts; other values pass through."""
        if isinstance(value, str):
            return self.render_string(value, context)
        if isinstance(value, dict):
            return {k: self.render_value(v, context) for k, v in value.items()}
        if isinstance(value, list):
            return [self.render_value(v, context) for v in value]
        return value
