"""Escalation queue API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from marketplace.api.deps import get_db, get_current_actor
from marketplace.api.errors import rejection_to_http
from marketplace.api.schemas.workflow import (
    DismissRequest,
    DismissedResponse,
    EscalationResponse,
    TransitionResponse,
)
from marketplace.core.rbac import Actor, require_permission
from marketplace.core.workflow import EntityType, EscalationQueue, Rejected

router = APIRouter(prefix="/escalations", tags=["escalations"])


@router.get("", response_model=List[EscalationResponse])
@require_permission()
async def list_pending_escalations(
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
    entity_type: Optional[EntityType] = None,
):
    """List escalations awaiting confirmation, oldest first."""
    pending = EscalationQueue(db).pending(entity_type)
    return [EscalationResponse.model_validate(r) for r in pending]


@router.get("/{escalation_id}", response_model=EscalationResponse)
@require_permission()
async def get_escalation(
    escalation_id: UUID,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Get a specific escalation request."""
    request = EscalationQueue(db).get(escalation_id)
    if not request:
        raise HTTPException(status_code=404, detail="Escalation not found")
    return EscalationResponse.model_validate(request)


@router.post("/{escalation_id}/confirm", response_model=TransitionResponse)
async def confirm_escalation(
    escalation_id: UUID,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Apply an escalated transition as the confirming actor."""
    outcome = EscalationQueue(db).confirm(escalation_id, current_actor)
    if isinstance(outcome, Rejected):
        db.rollback()
        raise rejection_to_http(outcome)

    db.commit()
    return TransitionResponse(
        id=outcome.entity_id,
        status=outcome.status,
        version=outcome.version,
        audit_entry_id=outcome.audit_entry_id,
    )


@router.post("/{escalation_id}/dismiss", response_model=DismissedResponse)
async def dismiss_escalation(
    escalation_id: UUID,
    body: Optional[DismissRequest] = None,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Close an escalation without applying it."""
    body = body or DismissRequest()
    outcome = EscalationQueue(db).dismiss(escalation_id, current_actor, body.reason)
    if isinstance(outcome, Rejected):
        db.rollback()
        raise rejection_to_http(outcome)

    db.commit()
    return DismissedResponse(escalation_id=outcome.escalation_id, entity_id=outcome.entity_id)
