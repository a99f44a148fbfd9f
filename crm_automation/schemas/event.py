"""Trigger event schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from .run import RunListItem


class EventRequest(BaseModel):
    """A CRM domain event that may start workflow runs."""

    type: Literal["new_lead", "stage_change", "message_received"]
    tenant_id: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict, description="e.g. {client, lead, message}")
    event_id: str | None = Field(None, description="Producer-side id, echoed back")

    class Config:
        json_schema_extra = {
            "example": {
                "type": "new_lead",
                "tenant_id": "acme",
                "payload": {
                    "client": {"name": "Ana Souza", "phone": "+55 11 99999-0000"},
                    "lead": {"source": "website"},
                },
            }
        }


class EventResponse(BaseModel):
    event_id: str | None
    matched: int
    runs: list[RunListItem]


class PreviewRequest(BaseModel):
    message: str
    data: dict[str, Any] | None = Field(None, description="Sample context; defaults to builder preview data")


class PreviewResponse(BaseModel):
    text: str
