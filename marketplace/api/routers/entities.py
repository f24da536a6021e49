"""Entity workflow API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from marketplace.api.deps import get_db, get_current_actor
from marketplace.api.errors import rejection_to_http
from marketplace.api.schemas.workflow import (
    AuditEntryResponse,
    AvailableActionResponse,
    BulkTransitionRequest,
    BulkTransitionResponse,
    EntityDetailResponse,
    EntityListResponse,
    EntityResponse,
    EscalatedResponse,
    StatusCountsResponse,
    TransitionRequest,
    TransitionResponse,
)
from marketplace.core.config import get_settings
from marketplace.core.rbac import Actor, PermissionGate, PermissionKey, require_permission
from marketplace.core.workflow import (
    AuditTrail,
    BulkOperationCoordinator,
    EntityStore,
    EntityType,
    Escalated,
    QueryProjection,
    Rejected,
    TransitionExecutor,
)

router = APIRouter(prefix="/entities", tags=["entities"])

# Permission needed to see entities of each type
VIEW_PERMISSIONS = {
    EntityType.SELLER: PermissionKey.SELLERS,
    EntityType.PRODUCT: PermissionKey.PRODUCTS,
    EntityType.RETURN: PermissionKey.RETURNS,
}


def ensure_can_view(actor: Actor, entity_type: EntityType) -> None:
    required = VIEW_PERMISSIONS[entity_type]
    if not PermissionGate().has_permission(actor, required):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions. Required: {required.value}",
        )


# Endpoints
@router.get("/{entity_type}", response_model=EntityListResponse)
@require_permission()
async def list_entities(
    entity_type: EntityType,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = None,
    search: Optional[str] = None,
):
    """List entities of a type with optional status, category and text filters."""
    ensure_can_view(current_actor, entity_type)
    settings = get_settings()
    page_size = min(limit or settings.default_page_size, settings.max_page_size)

    try:
        result = QueryProjection(db).query(
            entity_type,
            status=status_filter,
            category=category,
            search=search,
            page=page,
            page_size=page_size,
        )
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown {entity_type.value} status: {status_filter}",
        )

    return EntityListResponse(
        items=[EntityResponse.model_validate(e) for e in result.items],
        total=result.total,
        page=result.page,
        pages=result.pages,
    )


@router.get("/{entity_type}/stats", response_model=StatusCountsResponse)
@require_permission()
async def entity_stats(
    entity_type: EntityType,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Count entities of a type per status."""
    ensure_can_view(current_actor, entity_type)
    counts = QueryProjection(db).status_counts(entity_type)
    return StatusCountsResponse(
        entity_type=entity_type.value,
        total=sum(counts.values()),
        counts=counts,
    )


@router.post("/{entity_type}/transitions/{action}/bulk")
async def bulk_transition(
    entity_type: EntityType,
    action: str,
    batch: BulkTransitionRequest,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Perform one action on many entities. Each entity succeeds or fails on its own."""
    settings = get_settings()
    if len(batch.ids) > settings.bulk_max_ids:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.bulk_max_ids} ids per bulk request",
        )

    result = BulkOperationCoordinator(db).execute_bulk(
        batch.ids,
        action,
        current_actor,
        batch.payload(),
        entity_type=entity_type,
        reason=batch.reason,
        notes=batch.notes,
    )
    db.commit()

    response = BulkTransitionResponse(
        succeeded=result.succeeded,
        escalated=result.escalated,
        failed={entity_id: error.value for entity_id, error in result.failed.items()},
        messages=result.messages,
        outcome=result.outcome.value,
    )
    return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=response.model_dump(mode="json"))


@router.get("/{entity_type}/{entity_id}", response_model=EntityDetailResponse)
@require_permission()
async def get_entity(
    entity_type: EntityType,
    entity_id: UUID,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Get an entity and the actions the caller may attempt on it."""
    ensure_can_view(current_actor, entity_type)
    entity = EntityStore(db).get(entity_id, entity_type)
    if not entity:
        raise HTTPException(status_code=404, detail="Entity not found")

    actions = TransitionExecutor(db).available_actions(entity, current_actor)
    return EntityDetailResponse(
        **EntityResponse.model_validate(entity).model_dump(),
        available_actions=[AvailableActionResponse(**a._asdict()) for a in actions],
    )


@router.get("/{entity_type}/{entity_id}/history", response_model=List[AuditEntryResponse])
@require_permission()
async def get_entity_history(
    entity_type: EntityType,
    entity_id: UUID,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """Get the audit history of an entity, oldest first."""
    ensure_can_view(current_actor, entity_type)
    if not EntityStore(db).get(entity_id, entity_type):
        raise HTTPException(status_code=404, detail="Entity not found")

    history = AuditTrail(db).history(entity_id)
    return [AuditEntryResponse.model_validate(h) for h in history]


@router.post(
    "/{entity_type}/{entity_id}/transitions/{action}",
    response_model=TransitionResponse,
    responses={202: {"model": EscalatedResponse}},
)
async def perform_transition(
    entity_type: EntityType,
    entity_id: UUID,
    action: str,
    body: Optional[TransitionRequest] = None,
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
):
    """
    Perform an action on an entity.

    Returns 200 when the transition was applied (or the entity was already in
    the target status) and 202 when it awaits confirmation.
    """
    body = body or TransitionRequest()

    outcome = TransitionExecutor(db).execute(
        entity_id,
        action,
        current_actor,
        body.payload(),
        entity_type=entity_type,
        reason=body.reason,
        notes=body.notes,
    )

    if isinstance(outcome, Rejected):
        db.rollback()
        raise rejection_to_http(outcome)

    db.commit()

    if isinstance(outcome, Escalated):
        escalated = EscalatedResponse(
            id=outcome.entity_id,
            escalation_id=outcome.escalation_id,
            status=outcome.status,
            version=outcome.version,
        )
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=escalated.model_dump(mode="json"))

    return TransitionResponse(
        id=outcome.entity_id,
        status=outcome.status,
        version=outcome.version,
        audit_entry_id=outcome.audit_entry_id,
    )
