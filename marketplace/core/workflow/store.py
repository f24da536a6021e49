"""Entity persistence for the workflow engine.

The store is the only code that writes ``status`` and ``version``. Writes go
through a compare-and-swap UPDATE so two concurrent transitions on the same
entity can never both succeed against the same version.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
import uuid

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.db.models import Entity

from .states import DEFAULT_REGISTRY, EntityType


@dataclass(frozen=True)
class EntitySnapshot:
    """Point-in-time copy of an entity row.

    The executor decides against a snapshot and writes with the snapshot's
    version as the expected value.
    """
    id: UUID
    entity_type: EntityType
    status: str
    version: int
    name: Optional[str] = None
    category: Optional[str] = None
    domain_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, entity: Entity) -> "EntitySnapshot":
        return cls(
            id=entity.id,
            entity_type=EntityType(entity.entity_type),
            status=entity.status,
            version=entity.version,
            name=entity.name,
            category=entity.category,
            domain_fields=dict(entity.domain_fields or {}),
        )


class EntityStore:
    """Reads and conditionally updates governed entities."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, entity_id: UUID, entity_type: Optional[EntityType] = None) -> Optional[Entity]:
        """Get an entity row, always re-read from the database."""
        query = (
            select(Entity)
            .where(Entity.id == entity_id)
            .execution_options(populate_existing=True)
        )
        if entity_type is not None:
            query = query.where(Entity.entity_type == EntityType(entity_type).value)
        return self.db.execute(query).scalar_one_or_none()

    def load(self, entity_id: UUID, entity_type: Optional[EntityType] = None) -> Optional[EntitySnapshot]:
        """Get a snapshot of an entity, or None if it does not exist."""
        entity = self.get(entity_id, entity_type)
        return EntitySnapshot.from_model(entity) if entity else None

    def compare_and_swap(
        self,
        snapshot: EntitySnapshot,
        to_status: str,
        *,
        field_updates: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """
        Move an entity to ``to_status`` if it is still at the snapshot's version.

        Args:
            snapshot: State the caller decided against
            to_status: Target status value
            field_updates: Domain fields to merge into the stored ones

        Returns:
            The new version, or None if the row no longer matches the snapshot
        """
        domain_fields = dict(snapshot.domain_fields)
        domain_fields.update(field_updates or {})
        new_version = snapshot.version + 1

        result = self.db.execute(
            update(Entity)
            .where(
                Entity.id == snapshot.id,
                Entity.version == snapshot.version,
                Entity.status == snapshot.status,
            )
            .values(
                status=to_status,
                version=new_version,
                domain_fields=domain_fields,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return new_version

    def create_entity(
        self,
        entity_type: EntityType,
        *,
        name: Optional[str] = None,
        category: Optional[str] = None,
        domain_fields: Optional[Dict[str, Any]] = None,
        status: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> Entity:
        """
        Insert a new entity in its type's initial state.

        Entities are normally created by the onboarding flows; this exists for
        seeding and tests. ``status`` overrides the initial state.
        """
        entity_type = EntityType(entity_type)
        if status is None:
            status = DEFAULT_REGISTRY.initial_state(entity_type).value
        else:
            status = DEFAULT_REGISTRY.parse_status(entity_type, status).value

        entity = Entity(
            id=entity_id or uuid.uuid4(),
            entity_type=entity_type.value,
            status=status,
            version=1,
            name=name,
            category=category,
            domain_fields=dict(domain_fields or {}),
        )
        self.db.add(entity)
        self.db.flush()
        return entity
