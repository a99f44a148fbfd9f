"""
Template engine for ``{{category.field}}`` placeholders.

Uses simpleeval for safe expression evaluation (no eval() or exec()), so a
placeholder may also hold a small expression such as ``{{ upper(client.name) }}``.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any

from simpleeval import DEFAULT_FUNCTIONS, DEFAULT_OPERATORS, AttributeDoesNotExist, SimpleEval

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{(.+?)\}\}")

# Sample data used to preview messages in the builder
PREVIEW_DATA: dict[str, Any] = {
    "client": {
        "name": "John Smith",
        "email": "john.smith@example.com",
        "phone": "+1 555 0100",
    },
    "stage": {"name": "Qualified", "color": "#10b981"},
    "lead": {"status": "qualified", "source": "website"},
    "message": {"content": "Hi, I would like more information"},
    "company": {"name": "Acme", "phone": "+1 555 0199"},
}


class _Unresolved(Exception):
    pass


class _ContextEval(SimpleEval):
    """SimpleEval that reads dict keys before attributes.

    Context fields may share a name with a dict method (``order.items``,
    ``lead.values``); the context value wins, and a missing key never falls
    through to the dict method.
    """

    def _eval_attribute(self, node):
        if not node.attr.startswith("_"):
            value = self._eval(node.value)
            if isinstance(value, dict):
                if node.attr not in value:
                    raise AttributeDoesNotExist(node.attr, self.expr)
                return value[node.attr]
        return super()._eval_attribute(node)


class TemplateEngine:
    """Resolves placeholders against a run context.

    A placeholder that cannot be resolved is left in place untouched.
    """

    def __init__(self) -> None:
        self.evaluator = _ContextEval()
        self.evaluator.operators = DEFAULT_OPERATORS.copy()
        self.evaluator.functions = {
            **DEFAULT_FUNCTIONS,
            "str": str,
            "int": int,
            "float": float,
            "lower": lambda s: str(s).lower(),
            "upper": lambda s: str(s).upper(),
            "trim": lambda s: str(s).strip(),
            "title": lambda s: str(s).title(),
            "first_name": lambda s: str(s).split(" ")[0] if s else "",
            "default": lambda v, fallback: fallback if v in (None, "") else v,
            "join": lambda arr, sep=", ": sep.join(str(x) for x in arr),
            "length": lambda x: len(x),
        }

    def render(self, value: Any, context: dict[str, Any], now: datetime | None = None) -> Any:
        """
        Resolve placeholders in a value.

        Handles strings, dicts and lists recursively. A string made of a
        single placeholder resolves to the typed value (so ``"{{client}}"``
        in a webhook body becomes the client object).
        """
        names = self._names(context, now)
        return self._render(value, names)

    def render_text(self, template: str, context: dict[str, Any], now: datetime | None = None) -> str:
        """Resolve placeholders and always return a string."""
        names = self._names(context, now)
        return self._replace(template, names)

    def _render(self, value: Any, names: dict[str, Any]) -> Any:
        if isinstance(value, str):
            trimmed = value.strip()
            if (
                trimmed.startswith("{{")
                and trimmed.endswith("}}")
                and "{{" not in trimmed[2:-2]
            ):
                try:
                    return self._evaluate(trimmed[2:-2].strip(), names)
                except _Unresolved:
                    return value
            return self._replace(value, names)

        if isinstance(value, list):
            return [self._render(item, names) for item in value]

        if isinstance(value, dict):
            return {key: self._render(val, names) for key, val in value.items()}

        return value

    def _replace(self, template: str, names: dict[str, Any]) -> str:
        def replacer(match: re.Match[str]) -> str:
            try:
                return self._stringify(self._evaluate(match.group(1).strip(), names))
            except _Unresolved:
                return match.group(0)

        return PLACEHOLDER.sub(replacer, template)

    def _evaluate(self, expression: str, names: dict[str, Any]) -> Any:
        try:
            self.evaluator.names = names
            return self.evaluator.eval(expression)
        except Exception as e:
            logger.debug("Placeholder not resolved: %s (expression: %s)", e, expression)
            raise _Unresolved(expression) from e

    def _names(self, context: dict[str, Any], now: datetime | None) -> dict[str, Any]:
        now = now or datetime.now()
        names: dict[str, Any] = {
            "date": {
                "today": now.strftime("%Y-%m-%d"),
                "time": now.strftime("%H:%M"),
            },
        }
        names.update(context)
        return names

    def _stringify(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)


def preview_message(message: str, data: dict[str, Any] | None = None) -> str:
    """Render a message the way the builder previews it, without sending."""
    return template_engine.render_text(message, data or PREVIEW_DATA)


# Singleton instance
template_engine = TemplateEngine()
