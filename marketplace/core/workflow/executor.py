"""Transition executor.

Runs a single "perform action X on entity Y as actor P" request through the
registry, the permission gate, the rule's guard and escalation predicate, and
finally the compare-and-swap write plus audit append. Every expected refusal
comes back as a ``Rejected`` outcome; only infrastructure errors raise.

The executor never commits. The caller owns the transaction; each applied
transition runs inside its own savepoint so a lost race leaves nothing behind.
"""

import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.rbac import Actor, PermissionGate
from marketplace.db.models import AuditKind, EscalationRequest, EscalationStatus

from .audit import AuditTrail
from .outcomes import Applied, ErrorKind, Escalated, Rejected, TransitionOutcome
from .states import DEFAULT_REGISTRY, EntityType, StateMachineRegistry, TransitionRule
from .store import EntitySnapshot, EntityStore

logger = logging.getLogger(__name__)


class EscalationResolvedError(Exception):
    """Raised inside a confirmation when the escalation is no longer pending."""

    def __init__(self, escalation_id: UUID):
        self.escalation_id = escalation_id
        super().__init__(f"Escalation {escalation_id} is no longer pending")


class AvailableAction(NamedTuple):
    """An action an actor may attempt from an entity's current status."""
    action: str
    to_status: str
    requires_reason: bool
    escalates: bool


class TransitionExecutor:
    """
    Applies workflow transitions to governed entities.

    Handles:
    - Action resolution and legality checks
    - Permission checks through the gate
    - Guards and required reasons
    - Escalation of transitions the actor may request but not finalize
    - Optimistic concurrency through compare-and-swap
    """

    def __init__(
        self,
        db: Session,
        registry: StateMachineRegistry = DEFAULT_REGISTRY,
        gate: Optional[PermissionGate] = None,
    ):
        self.db = db
        self.registry = registry
        self.gate = gate or PermissionGate()
        self.store = EntityStore(db)
        self.audit = AuditTrail(db, registry)

    def execute(
        self,
        entity_id: UUID,
        action: str,
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        entity_type: Optional[EntityType] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Perform an action on an entity.

        Args:
            entity_id: Entity to transition
            action: Action name, e.g. ``approve``
            actor: Acting principal
            payload: Action-specific fields such as ``commission_percentage``
            entity_type: When given, entities of another type are not found
            reason: Free text reason, required by rejections and blocks
            notes: Free text notes kept with the audit entry

        Returns:
            Applied, Escalated or Rejected
        """
        payload = dict(payload or {})

        snapshot = self.store.load(entity_id, entity_type)
        if snapshot is None:
            return self._reject(ErrorKind.NOT_FOUND, f"Entity {entity_id} not found", entity_id, action, actor)

        target = self.registry.resolve_target(snapshot.entity_type, action)
        if target is None:
            return self._reject(
                ErrorKind.INVALID_TRANSITION,
                f"Action {action} does not exist for {snapshot.entity_type.value}",
                entity_id, action, actor,
            )

        # Double submit: the entity already sits where the action leads
        if snapshot.status == target.value:
            logger.info(f"{action} on {entity_id} is a no-op, already {target.value}")
            return Applied(entity_id=snapshot.id, status=snapshot.status, version=snapshot.version)

        rule = self.registry.allowed_transition(snapshot.entity_type, snapshot.status, target)
        if rule is None or rule.action != action:
            return self._reject(
                ErrorKind.INVALID_TRANSITION,
                f"Cannot {action} a {snapshot.entity_type.value} in status {snapshot.status}",
                entity_id, action, actor,
            )

        authorization = self.gate.authorize(actor, rule)
        if not authorization.allowed:
            return self._reject(ErrorKind.PERMISSION_DENIED, authorization.reason, entity_id, action, actor)

        problem = self.validate(rule, snapshot, payload, actor, reason)
        if problem:
            return self._reject(ErrorKind.VALIDATION_FAILED, problem, entity_id, action, actor)

        if rule.escalate_if is not None and rule.escalate_if(actor):
            return self._escalate(snapshot, rule, actor, payload, reason, notes)

        return self.apply(snapshot, rule, actor, payload, reason=reason, notes=notes)

    def validate(
        self,
        rule: TransitionRule,
        snapshot: EntitySnapshot,
        payload: Mapping[str, Any],
        actor: Actor,
        reason: Optional[str],
    ) -> Optional[str]:
        """Check the required reason and the rule's guard. Returns a message on failure."""
        if rule.requires_reason and not (reason and reason.strip()):
            return f"A reason is required to {rule.action.value} a {rule.entity_type.value}"
        if rule.guard is not None:
            return rule.guard(snapshot, payload, actor)
        return None

    def apply(
        self,
        snapshot: EntitySnapshot,
        rule: TransitionRule,
        actor: Actor,
        payload: Mapping[str, Any],
        *,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        requested_by_id: Optional[str] = None,
        escalation: Optional[EscalationRequest] = None,
    ) -> TransitionOutcome:
        """
        Write an authorized, validated transition.

        The status update, the audit entry and, for confirmations, the
        escalation's resolution are written in one savepoint.
        """
        to_status = rule.to_state.value
        field_updates = {key: payload[key] for key in rule.record_fields if key in payload}
        if rule.reason_field and reason:
            field_updates[rule.reason_field] = reason

        new_version = None
        entry = None
        try:
            with self.db.begin_nested():
                new_version = self.store.compare_and_swap(snapshot, to_status, field_updates=field_updates)
                if new_version is not None:
                    entry = self.audit.append(
                        entity_id=snapshot.id,
                        entity_type=snapshot.entity_type,
                        kind=AuditKind.APPLIED,
                        from_status=snapshot.status,
                        to_status=to_status,
                        action=rule.action.value,
                        actor_id=actor.id,
                        requested_by_id=requested_by_id,
                        escalation_id=escalation.id if escalation is not None else None,
                        reason=reason,
                        notes=notes,
                        payload=dict(payload),
                        resulting_version=new_version,
                    )
                    if escalation is not None:
                        self._claim_escalation(escalation, actor, entry.occurred_at)
        except EscalationResolvedError:
            logger.warning(f"Escalation {escalation.id} was resolved before it could be confirmed")
            return Rejected(
                ErrorKind.ALREADY_RESOLVED,
                f"Escalation {escalation.id} was resolved concurrently",
            )
        except IntegrityError:
            logger.warning(f"Audit version clash on {snapshot.id} v{snapshot.version + 1}")
            return Rejected(
                ErrorKind.CONCURRENT_MODIFICATION,
                f"Entity {snapshot.id} was modified concurrently",
            )

        if new_version is None:
            return self._resolve_lost_race(snapshot, to_status, rule.action.value)

        logger.info(
            f"{snapshot.entity_type.value} {snapshot.id}: {snapshot.status} -> {to_status} "
            f"by {actor.id} (v{new_version})"
        )
        return Applied(entity_id=snapshot.id, status=to_status, version=new_version, audit_entry_id=entry.id)

    def _resolve_lost_race(self, snapshot: EntitySnapshot, to_status: str, action: str) -> TransitionOutcome:
        current = self.store.load(snapshot.id)
        if current is not None and current.status == to_status:
            logger.info(f"{action} on {snapshot.id} lost the race to an identical change")
            return Applied(entity_id=current.id, status=current.status, version=current.version)

        logger.warning(f"{action} on {snapshot.id} lost the race at v{snapshot.version}")
        return Rejected(
            ErrorKind.CONCURRENT_MODIFICATION,
            f"Entity {snapshot.id} changed since version {snapshot.version}",
        )

    def _claim_escalation(self, escalation: EscalationRequest, actor: Actor, resolved_at) -> None:
        """Mark a pending escalation confirmed, or raise if someone resolved it first."""
        result = self.db.execute(
            update(EscalationRequest)
            .where(
                EscalationRequest.id == escalation.id,
                EscalationRequest.status == EscalationStatus.PENDING.value,
            )
            .values(
                status=EscalationStatus.CONFIRMED.value,
                resolved_by_id=actor.id,
                resolved_at=resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise EscalationResolvedError(escalation.id)

    def _pending_escalation(self, snapshot: EntitySnapshot, rule: TransitionRule) -> Optional[EscalationRequest]:
        return self.db.query(EscalationRequest).filter(
            EscalationRequest.entity_id == snapshot.id,
            EscalationRequest.action == rule.action.value,
            EscalationRequest.from_status == snapshot.status,
            EscalationRequest.status == EscalationStatus.PENDING.value,
        ).first()

    def _escalate(
        self,
        snapshot: EntitySnapshot,
        rule: TransitionRule,
        actor: Actor,
        payload: Dict[str, Any],
        reason: Optional[str],
        notes: Optional[str],
    ) -> Escalated:
        existing = self._pending_escalation(snapshot, rule)
        if existing is not None:
            return self._already_escalated(snapshot, rule, existing)

        request = EscalationRequest(
            entity_id=snapshot.id,
            entity_type=snapshot.entity_type.value,
            action=rule.action.value,
            from_status=snapshot.status,
            to_status=rule.to_state.value,
            payload=payload,
            reason=reason,
            notes=notes,
            requested_by_id=actor.id,
            status=EscalationStatus.PENDING.value,
        )
        try:
            with self.db.begin_nested():
                self.db.add(request)
                self.db.flush()
                self.audit.append(
                    entity_id=snapshot.id,
                    entity_type=snapshot.entity_type,
                    kind=AuditKind.ESCALATED,
                    from_status=snapshot.status,
                    to_status=rule.to_state.value,
                    action=rule.action.value,
                    actor_id=actor.id,
                    escalation_id=request.id,
                    reason=reason,
                    notes=notes,
                    payload=payload,
                    resulting_version=snapshot.version,
                )
        except IntegrityError:
            # Another request for the same transition was filed first
            existing = self._pending_escalation(snapshot, rule)
            if existing is None:
                raise
            return self._already_escalated(snapshot, rule, existing)

        logger.info(f"{rule.action.value} on {snapshot.id} by {actor.id} escalated as {request.id}")
        return Escalated(
            entity_id=snapshot.id,
            escalation_id=request.id,
            status=snapshot.status,
            version=snapshot.version,
        )

    def _already_escalated(
        self,
        snapshot: EntitySnapshot,
        rule: TransitionRule,
        existing: EscalationRequest,
    ) -> Escalated:
        logger.info(f"{rule.action.value} on {snapshot.id} already awaits confirmation ({existing.id})")
        return Escalated(
            entity_id=snapshot.id,
            escalation_id=existing.id,
            status=snapshot.status,
            version=snapshot.version,
        )

    def _reject(self, error: ErrorKind, message: str, entity_id, action, actor: Actor) -> Rejected:
        logger.info(f"{action} on {entity_id} by {actor.id} rejected: {error.value} ({message})")
        return Rejected(error, message or "")

    def available_actions(self, entity, actor: Actor) -> List[AvailableAction]:
        """List the actions an actor may attempt from an entity's current status."""
        entity_type = EntityType(entity.entity_type)
        available = []
        for rule in self.registry.outgoing(entity_type, entity.status):
            if not self.gate.authorize(actor, rule).allowed:
                continue
            available.append(AvailableAction(
                action=rule.action.value,
                to_status=rule.to_state.value,
                requires_reason=rule.requires_reason,
                escalates=bool(rule.escalate_if and rule.escalate_if(actor)),
            ))
        return available
