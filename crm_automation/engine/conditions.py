"""Condition evaluation for condition nodes (true/false ports)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo

from .configs import ConditionConfig

MISSING = object()


@dataclass(frozen=True)
class BusinessHours:
    """Opening hours used by the ``outside_business_hours`` operator."""

    start: time = time(9, 0)
    end: time = time(18, 0)
    days: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: Any) -> BusinessHours:
        return cls(
            start=time.fromisoformat(settings.business_hours_start),
            end=time.fromisoformat(settings.business_hours_end),
            days=frozenset(settings.business_days),
            timezone=settings.business_timezone,
        )

    def is_open(self, now: datetime) -> bool:
        """Whether ``now`` (naive values are UTC) falls inside opening hours."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(ZoneInfo(self.timezone))
        if local.weekday() not in self.days:
            return False
        return self.start <= local.time() < self.end


def get_path(context: dict[str, Any], path: str) -> Any:
    """Value at a dotted path, or MISSING when any segment is absent."""
    current: Any = context
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return MISSING
    return current


def evaluate_condition(
    config: ConditionConfig,
    context: dict[str, Any],
    now: datetime,
    business_hours: BusinessHours | None = None,
) -> bool:
    """
    Evaluate ``field OP value`` against a run context.

    A field missing from the context makes ``exists`` false, ``not_exists``
    true, and every comparison false. Evaluation never raises.
    """
    operator = config.operator

    if operator == "outside_business_hours":
        return not (business_hours or BusinessHours()).is_open(now)

    if config.field == "time":
        field_value: Any = now.strftime("%H:%M")
    else:
        field_value = get_path(context, config.field)

    if operator == "exists":
        return field_value is not MISSING and field_value is not None
    if operator == "not_exists":
        return field_value is MISSING or field_value is None
    if field_value is MISSING:
        return False

    compare_value = config.value

    if operator == "equals":
        return _equals(field_value, compare_value)
    elif operator == "not_equals":
        return not _equals(field_value, compare_value)
    elif operator == "contains":
        return _contains(field_value, compare_value)
    elif operator == "not_contains":
        return not _contains(field_value, compare_value)
    elif operator == "greater_than":
        try:
            return float(field_value) > float(compare_value)
        except (ValueError, TypeError):
            return False
    elif operator == "less_than":
        try:
            return float(field_value) < float(compare_value)
        except (ValueError, TypeError):
            return False
    return False


def _equals(field_value: Any, compare_value: Any) -> bool:
    if field_value == compare_value:
        return True
    # The builder stores comparison values as text
    if isinstance(field_value, bool):
        return str(field_value).lower() == str(compare_value).lower()
    if isinstance(field_value, (int, float)):
        try:
            return float(field_value) == float(compare_value)
        except (ValueError, TypeError):
            return False
    return str(field_value) == str(compare_value)


def _contains(field_value: Any, compare_value: Any) -> bool:
    if isinstance(field_value, (list, tuple, set)):
        return any(_equals(item, compare_value) for item in field_value)
    if isinstance(field_value, dict):
        return str(compare_value) in field_value
    if field_value is None:
        return False
    return str(compare_value) in str(field_value)
