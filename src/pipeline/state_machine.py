"""Pure transition table for the document processing state machine.

Nothing here touches the ledger or the clock.  The ledger calls
:func:`validate_transition` before every compare-and-set, and the
orchestrator uses :func:`next_stage` to decide what a claim should run.

Allowed moves:

* forward along the happy path, one step at a time;
* ``<stage running> → FAILED`` on a transient error, and
  ``FAILED → <running state of the failed stage>`` on retry;
* ``<stage running> → <same running state>`` when an expired lease is
  re-claimed after a crash;
* ``INDEXING → DEGRADED`` when index retries run out after a partial write;
* any non-dead-lettered state ``→ DEAD_LETTERED``;
* ``DEAD_LETTERED | DEGRADED → QUEUED`` on manual re-enqueue.
"""

from __future__ import annotations

from src.models.pipeline import PipelineStage, ProcessingState
from src.utils.errors import PipelineError

STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.OCR,
    PipelineStage.CHUNK,
    PipelineStage.EMBED,
    PipelineStage.INDEX,
)

# stage -> (state while running, state once committed)
_STAGE_STATES: dict[PipelineStage, tuple[ProcessingState, ProcessingState]] = {
    PipelineStage.OCR: (ProcessingState.OCR_RUNNING, ProcessingState.OCR_DONE),
    PipelineStage.CHUNK: (ProcessingState.CHUNKING, ProcessingState.CHUNKING_DONE),
    PipelineStage.EMBED: (ProcessingState.EMBEDDING, ProcessingState.EMBEDDING_DONE),
    PipelineStage.INDEX: (ProcessingState.INDEXING, ProcessingState.INDEXED),
}

RUNNING_STATES: frozenset[ProcessingState] = frozenset(
    running for running, _ in _STAGE_STATES.values()
)

TERMINAL_STATES: frozenset[ProcessingState] = frozenset(
    {ProcessingState.INDEXED, ProcessingState.DEAD_LETTERED, ProcessingState.DEGRADED}
)

# States from which a worker may claim the document for its next stage.
CLAIMABLE_STATES: frozenset[ProcessingState] = frozenset(
    {
        ProcessingState.QUEUED,
        ProcessingState.OCR_DONE,
        ProcessingState.CHUNKING_DONE,
        ProcessingState.EMBEDDING_DONE,
        ProcessingState.FAILED,
    }
)

_RESUMABLE_AFTER: dict[ProcessingState, PipelineStage] = {
    ProcessingState.QUEUED: PipelineStage.OCR,
    ProcessingState.OCR_DONE: PipelineStage.CHUNK,
    ProcessingState.CHUNKING_DONE: PipelineStage.EMBED,
    ProcessingState.EMBEDDING_DONE: PipelineStage.INDEX,
}


def running_state(stage: PipelineStage) -> ProcessingState:
    return _STAGE_STATES[stage][0]


def done_state(stage: PipelineStage) -> ProcessingState:
    return _STAGE_STATES[stage][1]


def stage_of(state: ProcessingState) -> PipelineStage | None:
    """Return the stage a running or done state belongs to, else ``None``."""
    for stage, (running, done) in _STAGE_STATES.items():
        if state in (running, done):
            return stage
    return None


def is_terminal(state: ProcessingState) -> bool:
    return state in TERMINAL_STATES


def is_running(state: ProcessingState) -> bool:
    return state in RUNNING_STATES


def next_stage(
    state: ProcessingState,
    failed_stage: PipelineStage | None = None,
) -> PipelineStage | None:
    """Return the stage a claim on a document in *state* should execute.

    Parameters
    ----------
    state:
        Current ledger state.
    failed_stage:
        Stage recorded when the document entered ``FAILED``.

    Returns
    -------
    PipelineStage | None
        ``None`` for terminal states.  A running state maps to its own stage
        so an orphaned claim re-runs the interrupted stage.

    Raises
    ------
    PipelineError
        If *state* is ``FAILED`` but no failed stage is known.
    """
    if is_terminal(state):
        return None
    if state is ProcessingState.FAILED:
        if failed_stage is None:
            raise PipelineError("FAILED entry has no failed_stage to resume")
        return failed_stage
    if state in RUNNING_STATES:
        return stage_of(state)
    return _RESUMABLE_AFTER[state]


def is_valid_transition(
    from_state: ProcessingState,
    to_state: ProcessingState,
    failed_stage: PipelineStage | None = None,
) -> bool:
    """Return ``True`` if moving *from_state* → *to_state* is permitted."""
    if to_state is ProcessingState.DEAD_LETTERED:
        return from_state is not ProcessingState.DEAD_LETTERED

    if to_state is ProcessingState.QUEUED:
        return from_state in (ProcessingState.DEAD_LETTERED, ProcessingState.DEGRADED)

    if to_state is ProcessingState.FAILED:
        return from_state in RUNNING_STATES

    if to_state is ProcessingState.DEGRADED:
        return from_state is ProcessingState.INDEXING

    if to_state in RUNNING_STATES:
        if from_state in RUNNING_STATES:
            # Lease takeover re-enters the same stage; nothing else.
            return from_state is to_state
        if from_state in CLAIMABLE_STATES:
            try:
                stage = next_stage(from_state, failed_stage)
            except PipelineError:
                return False
            return stage is not None and running_state(stage) is to_state
        return False

    # Remaining targets are the *_DONE states and INDEXED: commit of the
    # running stage only.
    stage = stage_of(to_state)
    return stage is not None and from_state is running_state(stage)


def validate_transition(
    from_state: ProcessingState,
    to_state: ProcessingState,
    failed_stage: PipelineStage | None = None,
) -> None:
    """Raise :class:`PipelineError` unless the transition is permitted."""
    if not is_valid_transition(from_state, to_state, failed_stage):
        raise PipelineError(
            f"Illegal state transition {from_state.value} -> {to_state.value}"
        )
