"""Every registered edge applies and every other (status, action) pair is refused."""

import pytest

from marketplace.core.workflow import Applied, ErrorKind, TransitionExecutor
from marketplace.core.workflow.states import (
    Action,
    DEFAULT_REGISTRY,
    EntityType,
    STATE_DEFINITIONS,
    TRANSITION_RULES,
)
from marketplace.db.models import AuditEntry, Entity

from tests.factories import create_entity, create_return, make_super_admin

# Satisfies every guard in the table for a return priced at 100
PAYLOAD = {"commission_percentage": 10, "refund_amount": 10, "pickup_date": "2026-11-02"}

REGISTERED = {(rule.entity_type, rule.from_state, rule.action) for rule in TRANSITION_RULES}

UNREGISTERED = [
    (entity_type, state, action)
    for entity_type, definition in STATE_DEFINITIONS.items()
    for state in sorted(definition.states, key=lambda s: s.value)
    for action in Action
    if (entity_type, state, action) not in REGISTERED
]

NO_OPS = [case for case in UNREGISTERED if DEFAULT_REGISTRY.resolve_target(case[0], case[2]) == case[1]]
ILLEGAL = [case for case in UNREGISTERED if case not in NO_OPS]


def _case_id(case):
    entity_type, state, action = case
    return f"{entity_type.value}-{state.value}-{action.value}"


def _create(db_session, entity_type, state):
    if entity_type == EntityType.RETURN:
        return create_return(db_session, status=state.value, item_price=100)
    return create_entity(db_session, entity_type, status=state.value)


def _reload(db_session, entity):
    return db_session.query(Entity).filter(Entity.id == entity.id).populate_existing().one()


@pytest.fixture
def executor(db_session):
    return TransitionExecutor(db_session)


@pytest.mark.parametrize(
    "rule", TRANSITION_RULES,
    ids=[_case_id((r.entity_type, r.from_state, r.action)) for r in TRANSITION_RULES],
)
def test_registered_edge_applies(db_session, executor, rule):
    entity = _create(db_session, rule.entity_type, rule.from_state)

    outcome = executor.execute(entity.id, rule.action.value, make_super_admin(), PAYLOAD, reason="Routine check")

    assert isinstance(outcome, Applied)
    assert not outcome.idempotent
    assert outcome.status == rule.to_state.value
    assert outcome.version == 2
    stored = _reload(db_session, entity)
    assert stored.status == rule.to_state.value
    assert stored.version == 2


@pytest.mark.parametrize("case", ILLEGAL, ids=[_case_id(c) for c in ILLEGAL])
def test_unregistered_pair_is_invalid(db_session, executor, case):
    entity_type, state, action = case
    entity = _create(db_session, entity_type, state)

    outcome = executor.execute(entity.id, action.value, make_super_admin(), PAYLOAD, reason="Routine check")

    assert outcome.error == ErrorKind.INVALID_TRANSITION
    stored = _reload(db_session, entity)
    assert stored.status == state.value
    assert stored.version == 1
    assert db_session.query(AuditEntry).filter(AuditEntry.entity_id == entity.id).count() == 0


@pytest.mark.parametrize("case", NO_OPS, ids=[_case_id(c) for c in NO_OPS])
def test_action_already_at_target_is_no_op(db_session, executor, case):
    entity_type, state, action = case
    entity = _create(db_session, entity_type, state)

    outcome = executor.execute(entity.id, action.value, make_super_admin(), PAYLOAD, reason="Routine check")

    assert isinstance(outcome, Applied)
    assert outcome.idempotent
    assert outcome.version == 1
    assert db_session.query(AuditEntry).filter(AuditEntry.entity_id == entity.id).count() == 0
