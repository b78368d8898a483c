import pytest

from oss_rebuild.core.domain.state_machine import PipelineStateMachine, StateMachineError
from oss_rebuild.core.types import PipelineState


def test_linear_progression():
    machine = PipelineStateMachine()
    for state in (
        PipelineState.FETCHING_UPSTREAM,
        PipelineState.BUILDING,
        PipelineState.STABILIZING,
        PipelineState.COMPARING,
        PipelineState.DONE,
    ):
        machine.advance(state)
    assert machine.done
    assert machine.history[0] == PipelineState.INFERRING
    assert len(machine.history) == 6


def test_any_state_can_finish_early():
    machine = PipelineStateMachine()
    machine.advance(PipelineState.FETCHING_UPSTREAM)
    machine.advance(PipelineState.DONE)
    assert machine.done


def test_skipping_states_is_rejected():
    machine = PipelineStateMachine()
    with pytest.raises(StateMachineError):
        machine.advance(PipelineState.BUILDING)


def test_done_is_terminal():
    machine = PipelineStateMachine()
    machine.advance(PipelineState.DONE)
    with pytest.raises(StateMachineError):
        machine.advance(PipelineState.INFERRING)
