"""Kind-specific node configuration schemas.

Each node kind (and each action type) has its own validated config model; the
builder's free-form ``data.config`` bag is parsed into one of these at save
time so an invalid option never reaches execution.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .types import NodeKind, TriggerType

DelayUnit = Literal["seconds", "minutes", "hours", "days"]
Channel = Literal["whatsapp", "email", "sms"]

UNIT_SECONDS: dict[str, int] = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
}

# Longest delay or timer interval accepted
MAX_WAIT_SECONDS = 365 * UNIT_SECONDS["days"]

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "exists",
    "not_exists",
    "outside_business_hours",
]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("", "any"):
        return None
    return value


def _split_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def _json_object(value: Any) -> Any:
    """Decode JSON strings typed into the builder's text areas."""
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e.msg}") from e
    return value


# --- Trigger ---


class TriggerConfig(_ConfigModel):
    trigger_type: TriggerType
    source: str | None = None
    from_stage: str | None = None
    to_stage: str | None = None
    channel: str | None = None
    keywords: list[str] = Field(default_factory=list)
    path: str | None = None
    webhook_url: str | None = None
    method: str = "POST"
    interval: float | None = None
    unit: DelayUnit = "minutes"

    @field_validator("source", "from_stage", "to_stage", "channel", mode="before")
    @classmethod
    def _normalize_filters(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("keywords", mode="before")
    @classmethod
    def _parse_keywords(cls, value: Any) -> list[str]:
        return _split_list(value)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_type_requirements(self) -> TriggerConfig:
        if self.trigger_type is TriggerType.WEBHOOK and not self.webhook_path:
            raise ValueError("webhook trigger requires a path")
        if self.trigger_type is TriggerType.TIME_BASED and not (self.interval and self.interval > 0):
            raise ValueError("time_based trigger requires interval > 0")
        if self.trigger_type is TriggerType.TIME_BASED and self.interval_seconds > MAX_WAIT_SECONDS:
            raise ValueError("time_based trigger interval must be at most 365 days")
        return self

    @property
    def webhook_path(self) -> str | None:
        raw = self.path
        if not raw and self.webhook_url:
            raw = urlparse(self.webhook_url).path
        return raw.strip("/") if raw else None

    @property
    def interval_seconds(self) -> float:
        return (self.interval or 0) * UNIT_SECONDS[self.unit]


# --- Flow control ---


class ConditionConfig(_ConfigModel):
    field: str = ""
    operator: ConditionOperator
    value: Any = None

    @model_validator(mode="after")
    def _check_field(self) -> ConditionConfig:
        if self.operator != "outside_business_hours" and not self.field:
            raise ValueError(f"operator {self.operator} requires a field")
        return self


class DelayConfig(_ConfigModel):
    duration: float = Field(gt=0)
    unit: DelayUnit = "minutes"

    @property
    def seconds(self) -> float:
        return self.duration * UNIT_SECONDS[self.unit]

    @model_validator(mode="after")
    def _check_length(self) -> DelayConfig:
        if self.seconds > MAX_WAIT_SECONDS:
            raise ValueError("delay must be at most 365 days")
        return self


# --- Actions ---


class SendMessageConfig(_ConfigModel):
    action_type: Literal["send_message"] = "send_message"
    channel: Channel = "whatsapp"
    message: str = Field(min_length=1)
    subject: str | None = None


class MoveStageConfig(_ConfigModel):
    action_type: Literal["move_stage"] = "move_stage"
    target_stage: str = Field(min_length=1)


class MoveSectorConfig(_ConfigModel):
    action_type: Literal["move_sector"] = "move_sector"
    sector: str = Field(min_length=1)


class WebhookActionConfig(_ConfigModel):
    action_type: Literal["webhook"] = "webhook"
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("headers", mode="before")
    @classmethod
    def _parse_headers(cls, value: Any) -> Any:
        return _json_object(value) or {}

    @field_validator("body", mode="before")
    @classmethod
    def _parse_body(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return _json_object(value)
            except ValueError:
                return value
        return value


class ChatbotConfig(_ConfigModel):
    action_type: Literal["chatbot_response"] = "chatbot_response"
    model: str = "gpt-3.5-turbo"
    system_prompt: str = "You are a virtual customer support assistant."
    temperature: float = Field(default=0.7, ge=0, le=1)
    transfer_if_unsure: bool = False
    channel: Channel = "whatsapp"


class ClassificationConfig(_ConfigModel):
    action_type: Literal["text_classification"] = "text_classification"
    categories: list[str] = Field(min_length=1)
    model: str = "gpt-3.5-turbo"
    action_on_category: Literal["move_sector", "tag", "notify"] = "move_sector"
    category_mapping: dict[str, str] = Field(default_factory=dict)

    @field_validator("categories", mode="before")
    @classmethod
    def _parse_categories(cls, value: Any) -> list[str]:
        return _split_list(value)

    @field_validator("category_mapping", mode="before")
    @classmethod
    def _parse_mapping(cls, value: Any) -> Any:
        return _json_object(value) or {}


class AgentConfig(_ConfigModel):
    action_type: Literal["agent_response"] = "agent_response"
    agent_id: str = Field(min_length=1)
    agent_name: str | None = None
    agent_role: str | None = None
    channel: Channel = "whatsapp"
    additional_context: str | None = None


ActionConfig = Union[
    SendMessageConfig,
    MoveStageConfig,
    MoveSectorConfig,
    WebhookActionConfig,
    ChatbotConfig,
    ClassificationConfig,
    AgentConfig,
]

NodeConfig = Union[TriggerConfig, ConditionConfig, DelayConfig, ActionConfig]

ACTION_CONFIGS: dict[str, type[_ConfigModel]] = {
    "send_message": SendMessageConfig,
    "move_stage": MoveStageConfig,
    "move_sector": MoveSectorConfig,
    "webhook": WebhookActionConfig,
    "chatbot_response": ChatbotConfig,
    "text_classification": ClassificationConfig,
    "agent_response": AgentConfig,
}

AI_ACTION_TYPES = frozenset({"chatbot_response", "text_classification", "agent_response"})

# Builder node ``type`` -> (kind, implied actionType)
WIRE_TYPES: dict[str, tuple[NodeKind, str | None]] = {
    "trigger": (NodeKind.TRIGGER, None),
    "condition": (NodeKind.CONDITION, None),
    "delay": (NodeKind.DELAY, None),
    "action": (NodeKind.ACTION, None),
    "webhook": (NodeKind.ACTION, "webhook"),
    "chatbot": (NodeKind.AI_STEP, "chatbot_response"),
    "classifier": (NodeKind.AI_STEP, "text_classification"),
    "agent": (NodeKind.AI_STEP, "agent_response"),
    "ai-step": (NodeKind.AI_STEP, None),
}


def parse_node_config(kind: NodeKind, raw: dict[str, Any], implied_action: str | None = None) -> NodeConfig:
    """Parse a raw config bag into the schema for ``kind``.

    Raises:
        ValueError: unknown action type
        pydantic.ValidationError: config fails its schema
    """
    if kind is NodeKind.TRIGGER:
        return TriggerConfig.model_validate(raw)
    if kind is NodeKind.CONDITION:
        return ConditionConfig.model_validate(raw)
    if kind is NodeKind.DELAY:
        return DelayConfig.model_validate(raw)

    action_type = raw.get("actionType") or implied_action
    model = ACTION_CONFIGS.get(action_type) if isinstance(action_type, str) else None
    if model is None:
        raise ValueError(f'Unknown action type: "{action_type}"')
    if kind is NodeKind.AI_STEP and action_type not in AI_ACTION_TYPES:
        raise ValueError(f'Action type "{action_type}" is not an AI step')
    return model.model_validate({**raw, "actionType": action_type})
