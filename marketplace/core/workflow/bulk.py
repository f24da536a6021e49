"""Bulk transitions.

Runs the same action over many entities. Each entity is an independent
transition; a failure on one never undoes another's success.
"""

import logging
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from marketplace.core.rbac import Actor

from .executor import TransitionExecutor
from .outcomes import Applied, BulkResult, Escalated
from .states import EntityType

logger = logging.getLogger(__name__)


class BulkOperationCoordinator:
    """Applies one action to a set of entities, one savepoint per entity."""

    def __init__(self, db: Session, executor: Optional[TransitionExecutor] = None):
        self.db = db
        self.executor = executor or TransitionExecutor(db)

    def execute_bulk(
        self,
        entity_ids: Iterable[UUID],
        action: str,
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        entity_type: Optional[EntityType] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BulkResult:
        """
        Perform an action on every listed entity.

        Duplicate ids are executed once, in first-seen order.

        Returns:
            BulkResult listing succeeded, escalated and failed ids
        """
        result = BulkResult()
        seen = set()

        for entity_id in entity_ids:
            if entity_id in seen:
                continue
            seen.add(entity_id)

            outcome = self.executor.execute(
                entity_id,
                action,
                actor,
                payload,
                entity_type=entity_type,
                reason=reason,
                notes=notes,
            )
            if isinstance(outcome, Applied):
                result.succeeded.append(entity_id)
            elif isinstance(outcome, Escalated):
                result.escalated[entity_id] = outcome.escalation_id
            else:
                result.failed[entity_id] = outcome.error
                result.messages[entity_id] = outcome.message

        logger.info(
            f"Bulk {action} by {actor.id}: {len(result.succeeded)} succeeded, "
            f"{len(result.escalated)} escalated, {len(result.failed)} failed"
        )
        return result
