"""Append-only audit trail for workflow transitions.

Only the transition executor and the escalation queue append entries. There
is no update or delete API; the model rejects both at flush time.
"""

import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from marketplace.db.models import AuditEntry, AuditKind

from .states import DEFAULT_REGISTRY, EntityType, StateMachineRegistry

EXPORT_LIMIT = 10000

CSV_COLUMNS = [
    "id", "occurred_at", "entity_type", "entity_id", "kind", "action",
    "from_status", "to_status", "actor_id", "requested_by_id",
    "resulting_version", "reason", "payload",
]


class HistoryReplayError(ValueError):
    """Raised when a history does not describe a legal path."""


class AuditTrail:
    """Writes and reads audit entries."""

    def __init__(self, db: Session, registry: StateMachineRegistry = DEFAULT_REGISTRY):
        self.db = db
        self.registry = registry

    def append(
        self,
        *,
        entity_id: UUID,
        entity_type: EntityType,
        kind: AuditKind,
        from_status: str,
        to_status: str,
        action: str,
        actor_id: str,
        resulting_version: int,
        requested_by_id: Optional[str] = None,
        escalation_id: Optional[UUID] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Add an entry and flush it so its sequence id is assigned."""
        entry = AuditEntry(
            entity_id=entity_id,
            entity_type=EntityType(entity_type).value,
            kind=AuditKind(kind).value,
            from_status=from_status,
            to_status=to_status,
            action=action,
            actor_id=actor_id,
            requested_by_id=requested_by_id,
            escalation_id=escalation_id,
            reason=reason,
            notes=notes,
            payload=dict(payload or {}),
            occurred_at=datetime.utcnow(),
            resulting_version=resulting_version,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def history(self, entity_id: UUID, *, applied_only: bool = False) -> List[AuditEntry]:
        """Get an entity's entries in the order they were written."""
        query = self.db.query(AuditEntry).filter(AuditEntry.entity_id == entity_id)
        if applied_only:
            query = query.filter(AuditEntry.kind == AuditKind.APPLIED.value)
        return query.order_by(AuditEntry.id.asc()).all()

    def replay(self, entity_type: EntityType, entries: Iterable[AuditEntry]) -> str:
        """
        Fold a history into the status it leads to.

        Escalated and dismissed entries are skipped. Each applied entry must
        start where the previous one ended and follow a registered edge.

        Returns:
            The status value reached after the last applied entry

        Raises:
            HistoryReplayError: If an applied entry does not follow a legal edge
        """
        entity_type = EntityType(entity_type)
        current = self.registry.initial_state(entity_type).value

        for entry in entries:
            if entry.kind != AuditKind.APPLIED.value:
                continue
            if entry.from_status != current:
                raise HistoryReplayError(
                    f"Entry {entry.id} starts at {entry.from_status}, expected {current}"
                )
            if self.registry.allowed_transition(entity_type, entry.from_status, entry.to_status) is None:
                raise HistoryReplayError(
                    f"Entry {entry.id} records an illegal transition "
                    f"{entry.from_status} -> {entry.to_status}"
                )
            current = entry.to_status

        return current

    def _filtered(
        self,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        kind: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ):
        query = self.db.query(AuditEntry)

        if entity_type:
            query = query.filter(AuditEntry.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditEntry.entity_id == entity_id)
        if actor_id:
            query = query.filter(
                or_(AuditEntry.actor_id == actor_id, AuditEntry.requested_by_id == actor_id)
            )
        if action:
            query = query.filter(AuditEntry.action == action)
        if kind:
            query = query.filter(AuditEntry.kind == kind)
        if start_date:
            query = query.filter(AuditEntry.occurred_at >= start_date)
        if end_date:
            query = query.filter(AuditEntry.occurred_at <= end_date)
        if search:
            query = query.filter(
                or_(
                    AuditEntry.reason.ilike(f"%{search}%"),
                    AuditEntry.notes.ilike(f"%{search}%"),
                    AuditEntry.action.ilike(f"%{search}%"),
                )
            )
        return query

    def search(self, *, page: int = 1, per_page: int = 50, **filters) -> Tuple[List[AuditEntry], int]:
        """Get one page of entries, newest first, and the total match count."""
        query = self._filtered(**filters)
        total = query.count()
        entries = (
            query.order_by(AuditEntry.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return entries, total

    def export_csv(self, **filters) -> str:
        """Render matching entries as CSV for compliance exports."""
        entries = self._filtered(**filters).order_by(AuditEntry.id.asc()).limit(EXPORT_LIMIT).all()

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)
        for entry in entries:
            writer.writerow([
                entry.id,
                entry.occurred_at.isoformat() if entry.occurred_at else "",
                entry.entity_type,
                str(entry.entity_id),
                entry.kind,
                entry.action,
                entry.from_status,
                entry.to_status,
                entry.actor_id,
                entry.requested_by_id or "",
                entry.resulting_version,
                entry.reason or "",
                json.dumps(entry.payload, sort_keys=True) if entry.payload else "",
            ])
        return output.getvalue()
