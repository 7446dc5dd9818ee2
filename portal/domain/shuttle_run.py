from __future__ import annotations

from enum import Enum


class RunState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    ENDED = 'ended'


NEXT_RUN_STATE: dict[RunState, RunState] = {
    RunState.IDLE: RunState.RUNNING,
    RunState.RUNNING: RunState.ENDED,
}


class RunTransitionError(ValueError):
    pass


def next_run_state(current: RunState | str) -> RunState:
    state = RunState(current)
    if state not in NEXT_RUN_STATE:
        raise RunTransitionError(f'Run is already {state.value}')
    return NEXT_RUN_STATE[state]
