"""Escalation queue.

Transitions whose rule escalates for the requesting actor are parked here
until a more privileged confirmer applies or dismisses them. Confirming
re-checks everything against the entity as it is now; a request whose entity
moved on stays pending and reports a concurrent modification.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.core.rbac import Actor
from marketplace.db.models import AuditKind, EscalationRequest, EscalationStatus

from .executor import TransitionExecutor
from .outcomes import Applied, Dismissed, ErrorKind, Rejected
from .states import EntityType

logger = logging.getLogger(__name__)


class EscalationQueue:
    """Lists, confirms and dismisses escalation requests."""

    def __init__(self, db: Session, executor: Optional[TransitionExecutor] = None):
        self.db = db
        self.executor = executor or TransitionExecutor(db)

    def get(self, escalation_id: UUID) -> Optional[EscalationRequest]:
        return self.db.query(EscalationRequest).filter(
            EscalationRequest.id == escalation_id
        ).populate_existing().first()

    def pending(self, entity_type: Optional[EntityType] = None) -> List[EscalationRequest]:
        """Get pending requests, oldest first."""
        query = self.db.query(EscalationRequest).filter(
            EscalationRequest.status == EscalationStatus.PENDING.value
        )
        if entity_type:
            query = query.filter(EscalationRequest.entity_type == EntityType(entity_type).value)
        return query.order_by(EscalationRequest.requested_at.asc()).populate_existing().all()

    def confirm(self, escalation_id: UUID, confirmer: Actor) -> Union[Applied, Rejected]:
        """
        Apply an escalated transition on behalf of its requester.

        Returns:
            Applied, or Rejected with NOT_FOUND, ALREADY_RESOLVED,
            PERMISSION_DENIED, VALIDATION_FAILED or CONCURRENT_MODIFICATION
        """
        request = self.get(escalation_id)
        if request is None:
            return Rejected(ErrorKind.NOT_FOUND, f"Escalation {escalation_id} not found")
        if not request.is_pending:
            return Rejected(ErrorKind.ALREADY_RESOLVED, f"Escalation {escalation_id} is already {request.status}")

        executor = self.executor
        snapshot = executor.store.load(request.entity_id)
        if snapshot is None:
            return Rejected(ErrorKind.NOT_FOUND, f"Entity {request.entity_id} not found")

        rule = executor.registry.allowed_transition(snapshot.entity_type, request.from_status, request.to_status)
        if rule is None or rule.action != request.action:
            return Rejected(
                ErrorKind.INVALID_TRANSITION,
                f"{request.from_status} -> {request.to_status} is no longer a legal transition",
            )

        problem = self._confirmer_problem(request, rule, confirmer)
        if problem:
            logger.info(f"Escalation {escalation_id} confirm by {confirmer.id} denied: {problem}")
            return Rejected(ErrorKind.PERMISSION_DENIED, problem)

        if snapshot.status != request.from_status:
            logger.warning(
                f"Escalation {escalation_id}: entity moved from {request.from_status} to {snapshot.status}"
            )
            return self._lost_confirmation(
                escalation_id, f"Entity is now {snapshot.status}, escalation expected {request.from_status}"
            )

        payload = dict(request.payload or {})
        problem = executor.validate(rule, snapshot, payload, confirmer, request.reason)
        if problem:
            return Rejected(ErrorKind.VALIDATION_FAILED, problem)

        outcome = executor.apply(
            snapshot,
            rule,
            confirmer,
            payload,
            reason=request.reason,
            notes=request.notes,
            requested_by_id=request.requested_by_id,
            escalation=request,
        )
        if isinstance(outcome, Applied) and outcome.idempotent:
            # Another writer reached the target first; this request applied nothing
            return self._lost_confirmation(
                escalation_id, f"Entity reached {outcome.status} before the escalation was confirmed"
            )
        if isinstance(outcome, Rejected) and outcome.error == ErrorKind.CONCURRENT_MODIFICATION:
            return self._lost_confirmation(escalation_id, outcome.message)
        if isinstance(outcome, Applied):
            logger.info(f"Escalation {escalation_id} confirmed by {confirmer.id}")
        return outcome

    def _lost_confirmation(self, escalation_id: UUID, message: str) -> Rejected:
        current = self.get(escalation_id)
        if current is not None and not current.is_pending:
            return Rejected(ErrorKind.ALREADY_RESOLVED, f"Escalation {escalation_id} is already {current.status}")
        return Rejected(ErrorKind.CONCURRENT_MODIFICATION, message)

    def dismiss(
        self,
        escalation_id: UUID,
        confirmer: Actor,
        reason: Optional[str] = None,
    ) -> Union[Dismissed, Rejected]:
        """Close a request without touching its entity."""
        request = self.get(escalation_id)
        if request is None:
            return Rejected(ErrorKind.NOT_FOUND, f"Escalation {escalation_id} not found")
        if not request.is_pending:
            return Rejected(ErrorKind.ALREADY_RESOLVED, f"Escalation {escalation_id} is already {request.status}")

        rule = self.executor.registry.allowed_transition(
            EntityType(request.entity_type), request.from_status, request.to_status
        )
        problem = self._confirmer_problem(request, rule, confirmer)
        if problem:
            return Rejected(ErrorKind.PERMISSION_DENIED, problem)

        snapshot = self.executor.store.load(request.entity_id)
        now = datetime.utcnow()

        with self.db.begin_nested():
            result = self.db.execute(
                update(EscalationRequest)
                .where(
                    EscalationRequest.id == request.id,
                    EscalationRequest.status == EscalationStatus.PENDING.value,
                )
                .values(
                    status=EscalationStatus.DISMISSED.value,
                    resolved_by_id=confirmer.id,
                    resolved_at=now,
                    resolution_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.executor.audit.append(
                    entity_id=request.entity_id,
                    entity_type=EntityType(request.entity_type),
                    kind=AuditKind.DISMISSED,
                    from_status=request.from_status,
                    to_status=request.to_status,
                    action=request.action,
                    actor_id=confirmer.id,
                    requested_by_id=request.requested_by_id,
                    escalation_id=request.id,
                    reason=reason,
                    payload=dict(request.payload or {}),
                    resulting_version=snapshot.version if snapshot else 0,
                )

        if result.rowcount != 1:
            return Rejected(ErrorKind.ALREADY_RESOLVED, f"Escalation {escalation_id} was resolved concurrently")

        logger.info(f"Escalation {escalation_id} dismissed by {confirmer.id}")
        return Dismissed(escalation_id=request.id, entity_id=request.entity_id)

    def _confirmer_problem(self, request: EscalationRequest, rule, confirmer: Actor) -> Optional[str]:
        if rule is not None:
            authorization = self.executor.gate.authorize(confirmer, rule)
            if not authorization.allowed:
                return authorization.reason
            if rule.escalate_if is not None and rule.escalate_if(confirmer):
                return f"{rule.action.value} must be confirmed by a more privileged actor"
        elif not confirmer.is_super_admin:
            return "Only a super admin can resolve this escalation"
        return None
