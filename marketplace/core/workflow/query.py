"""Read-only listings of governed entities for the admin screens."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from marketplace.db.models import Entity

from .states import DEFAULT_REGISTRY, EntityType, StateMachineRegistry


@dataclass
class Page:
    """One page of a filtered listing."""
    items: List[Entity]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size > 0 else 0


class QueryProjection:
    """Filtered, paginated views over entities. Never writes."""

    def __init__(self, db: Session, registry: StateMachineRegistry = DEFAULT_REGISTRY):
        self.db = db
        self.registry = registry

    def query(
        self,
        entity_type: EntityType,
        *,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """
        List entities of one type, newest first.

        Args:
            entity_type: Type to list
            status: Only entities in this status
            category: Only entities in this category
            search: Case-insensitive match on name or category
            page: 1-based page number
            page_size: Items per page

        Raises:
            ValueError: If status is not a status of the entity type
        """
        entity_type = EntityType(entity_type)
        query = self.db.query(Entity).filter(Entity.entity_type == entity_type.value)

        if status:
            status = self.registry.parse_status(entity_type, status.upper()).value
            query = query.filter(Entity.status == status)
        if category:
            query = query.filter(Entity.category == category)
        if search:
            query = query.filter(
                or_(
                    Entity.name.ilike(f"%{search}%"),
                    Entity.category.ilike(f"%{search}%"),
                )
            )

        total = query.count()
        items = (
            query.order_by(Entity.created_at.desc(), Entity.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return Page(items=items, total=total, page=page, page_size=page_size)

    def status_counts(self, entity_type: EntityType) -> Dict[str, int]:
        """Count entities per status. Every status of the type is present."""
        entity_type = EntityType(entity_type)
        counts = {state.value: 0 for state in self.registry.definition(entity_type).states}

        rows = (
            self.db.query(Entity.status, func.count(Entity.id))
            .filter(Entity.entity_type == entity_type.value)
            .group_by(Entity.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts
