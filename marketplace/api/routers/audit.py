"""Audit trail query API endpoints."""

from typing import Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from marketplace.api.deps import get_db, get_current_actor
from marketplace.api.schemas.common import PaginatedResponse
from marketplace.api.schemas.workflow import AuditEntryResponse
from marketplace.core.rbac import Actor, require_permission
from marketplace.core.workflow import AuditTrail, EntityType

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=PaginatedResponse[AuditEntryResponse])
@require_permission()
async def list_audit_logs(
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    entity_type: Optional[EntityType] = None,
    entity_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    kind: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
):
    """
    List audit entries, newest first.

    Supports filtering by entity, actor, action, entry kind and date range.
    """
    entries, total = AuditTrail(db).search(
        page=page,
        per_page=per_page,
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        actor_id=actor_id,
        action=action,
        kind=kind,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    return PaginatedResponse[AuditEntryResponse].create(
        items=[AuditEntryResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/export")
@require_permission()
async def export_audit_logs_csv(
    db: Session = Depends(get_db),
    current_actor: Actor = Depends(get_current_actor),
    entity_type: Optional[EntityType] = None,
    entity_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """Export audit entries as CSV for compliance."""
    content = AuditTrail(db).export_csv(
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        actor_id=actor_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
    )

    date_str = datetime.utcnow().strftime("%Y%m%d")
    filename = f"audit_logs_{date_str}.csv"

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
