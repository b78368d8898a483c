from typing import Dict, Set

from oss_rebuild.core.types import PipelineState


class StateMachineError(Exception):
    """Raised when an invalid pipeline transition is attempted."""


class PipelineStateMachine:
    """
    Enforces the linear rebuild pipeline.
    Any state may short-circuit to DONE on a terminal failure.
    """

    _TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
        PipelineState.INFERRING: {PipelineState.FETCHING_UPSTREAM, PipelineState.DONE},
        PipelineState.FETCHING_UPSTREAM: {PipelineState.BUILDING, PipelineState.DONE},
        PipelineState.BUILDING: {PipelineState.STABILIZING, PipelineState.DONE},
        PipelineState.STABILIZING: {PipelineState.COMPARING, PipelineState.DONE},
        PipelineState.COMPARING: {PipelineState.DONE},
        PipelineState.DONE: set(),
    }

    def __init__(self, initial: PipelineState = PipelineState.INFERRING):
        self.state = initial
        self.history = [initial]

    @staticmethod
    def validate_transition(current: PipelineState, requested: PipelineState) -> None:
        allowed_next = PipelineStateMachine._TRANSITIONS.get(current, set())
        if requested not in allowed_next:
            raise StateMachineError(f"Invalid pipeline transition: {current.value} -> {requested.value}")

    def advance(self, requested: PipelineState) -> PipelineState:
        self.validate_transition(self.state, requested)
        self.state = requested
        self.history.append(requested)
        return requested

    @property
    def done(self) -> bool:
        return self.state == PipelineState.DONE
