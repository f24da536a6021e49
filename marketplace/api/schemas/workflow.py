"""Request and response schemas for the workflow endpoints."""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    """``commissionPercentage`` -> ``commission_percentage``."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


# Requests
class TransitionRequest(BaseModel):
    """
    Body of a transition call.

    Besides ``reason`` and ``notes`` the body carries the action's payload
    fields at the top level, e.g. ``{"commission_percentage": 12}``.
    """
    model_config = ConfigDict(extra="allow")

    reason: Optional[str] = None
    notes: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        """Payload fields with camelCase keys normalized to snake_case."""
        return {to_snake(key): value for key, value in (self.model_extra or {}).items()}


class BulkTransitionRequest(TransitionRequest):
    ids: List[UUID] = Field(..., min_length=1)


class DismissRequest(BaseModel):
    reason: Optional[str] = None


# Responses
class TransitionResponse(BaseModel):
    id: UUID
    status: str
    version: int
    audit_entry_id: Optional[int] = None


class EscalatedResponse(BaseModel):
    id: UUID
    escalation_id: UUID
    status: str
    version: int


class BulkTransitionResponse(BaseModel):
    succeeded: List[UUID]
    escalated: Dict[UUID, UUID]
    failed: Dict[UUID, str]
    messages: Dict[UUID, str] = {}
    outcome: str


class EntityResponse(BaseModel):
    id: UUID
    entity_type: str
    status: str
    version: int
    name: Optional[str]
    category: Optional[str]
    domain_fields: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailableActionResponse(BaseModel):
    action: str
    to_status: str
    requires_reason: bool
    escalates: bool


class EntityDetailResponse(EntityResponse):
    available_actions: List[AvailableActionResponse] = []


class EntityListResponse(BaseModel):
    items: List[EntityResponse]
    total: int
    page: int
    pages: int


class StatusCountsResponse(BaseModel):
    entity_type: str
    total: int
    counts: Dict[str, int]


class AuditEntryResponse(BaseModel):
    id: int
    entity_id: UUID
    entity_type: str
    kind: str
    from_status: str
    to_status: str
    action: str
    actor_id: str
    requested_by_id: Optional[str]
    escalation_id: Optional[UUID]
    reason: Optional[str]
    notes: Optional[str]
    payload: Dict[str, Any]
    occurred_at: datetime
    resulting_version: int

    model_config = ConfigDict(from_attributes=True)


class EscalationResponse(BaseModel):
    id: UUID
    entity_id: UUID
    entity_type: str
    action: str
    from_status: str
    to_status: str
    payload: Dict[str, Any]
    reason: Optional[str]
    notes: Optional[str]
    requested_by_id: str
    requested_at: datetime
    status: str
    resolved_by_id: Optional[str]
    resolved_at: Optional[datetime]
    resolution_reason: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class DismissedResponse(BaseModel):
    escalation_id: UUID
    entity_id: UUID
    status: str = "dismissed"
