from repairdesk.utils.fsm import TransitionValidator, InvalidTransition
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()}, field_name='guard state')
    with pytest.raises(InvalidTransition, match='guard state transition A -> C'):
        fsm.assert_can_transition('A', 'C')


def test_unknown_source_state_has_no_edges():
    fsm = TransitionValidator({'A': {'B'}})
    assert not fsm.can_transition('Z', 'A')
