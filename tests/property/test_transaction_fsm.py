from hypothesis import given, strategies as st

from zol_client.application.services.transaction_state_machine import (
    TRANSITIONS,
    InvalidTransition,
    TransactionStateMachine,
)
from zol_client.domain.models.transaction import TransactionState, TransactionStatus


@given(
    current=st.sampled_from(list(TransactionStatus)),
    target=st.sampled_from(list(TransactionStatus)),
)
def test_transaction_fsm_transitions(current, target):
    fsm = TransactionStateMachine()
    fsm.state = TransactionState(status=current, operation="Deposit")

    can = fsm.can_transition(target)
    assert can == (target in TRANSITIONS.get(current, set()))
    if can:
        updated = fsm.transition(target)
        assert updated.status == target
        assert updated.operation == "Deposit"
    else:
        try:
            fsm.transition(target)
        except InvalidTransition:
            assert fsm.status == current
        else:
            assert False, f"Transition {current}->{target} should be invalid"


@given(path=st.lists(st.sampled_from(list(TransactionStatus)), max_size=8))
def test_terminal_states_have_no_exit(path):
    fsm = TransactionStateMachine()
    for target in path:
        if fsm.can_transition(target):
            fsm.transition(target)
    if fsm.status in (TransactionStatus.FINALIZED, TransactionStatus.ERROR):
        assert not any(fsm.can_transition(s) for s in TransactionStatus)


@given(path=st.lists(st.sampled_from(list(TransactionStatus)), max_size=8))
def test_snapshots_are_not_mutated(path):
    fsm = TransactionStateMachine()
    seen = []
    for target in path:
        if fsm.can_transition(target):
            before = fsm.state
            seen.append((before, before.status))
            fsm.transition(target)
    assert all(state.status == status for state, status in seen)
    fsm.reset()
    assert fsm.status == TransactionStatus.IDLE
