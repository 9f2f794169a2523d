"""Unit tests for the document state machine transition table."""

from __future__ import annotations

import pytest

from src.models.pipeline import PipelineStage, ProcessingState
from src.pipeline.state_machine import (
    done_state,
    is_terminal,
    is_valid_transition,
    next_stage,
    running_state,
    validate_transition,
)
from src.utils.errors import PipelineError

S = ProcessingState

HAPPY_PATH = [
    S.QUEUED,
    S.OCR_RUNNING,
    S.OCR_DONE,
    S.CHUNKING,
    S.CHUNKING_DONE,
    S.EMBEDDING,
    S.EMBEDDING_DONE,
    S.INDEXING,
    S.INDEXED,
]


class TestHappyPath:
    def test_each_step_is_valid(self) -> None:
        for current, following in zip(HAPPY_PATH, HAPPY_PATH[1:]):
            assert is_valid_transition(current, following), f"{current} -> {following}"

    def test_skipping_a_stage_is_invalid(self) -> None:
        assert not is_valid_transition(S.QUEUED, S.CHUNKING)
        assert not is_valid_transition(S.OCR_RUNNING, S.CHUNKING_DONE)
        assert not is_valid_transition(S.EMBEDDING_DONE, S.INDEXED)

    def test_backwards_is_invalid(self) -> None:
        assert not is_valid_transition(S.CHUNKING_DONE, S.OCR_RUNNING)
        assert not is_valid_transition(S.INDEXED, S.INDEXING)


class TestFailurePaths:
    @pytest.mark.parametrize("running", [S.OCR_RUNNING, S.CHUNKING, S.EMBEDDING, S.INDEXING])
    def test_running_states_may_fail(self, running: ProcessingState) -> None:
        assert is_valid_transition(running, S.FAILED)

    def test_done_states_may_not_fail(self) -> None:
        assert not is_valid_transition(S.OCR_DONE, S.FAILED)

    def test_failed_resumes_only_the_failed_stage(self) -> None:
        assert is_valid_transition(S.FAILED, S.EMBEDDING, PipelineStage.EMBED)
        assert not is_valid_transition(S.FAILED, S.OCR_RUNNING, PipelineStage.EMBED)

    def test_failed_without_stage_cannot_resume(self) -> None:
        assert not is_valid_transition(S.FAILED, S.OCR_RUNNING, None)

    def test_anything_but_dead_letter_may_be_dead_lettered(self) -> None:
        for state in ProcessingState:
            expected = state is not S.DEAD_LETTERED
            assert is_valid_transition(state, S.DEAD_LETTERED) is expected

    def test_only_indexing_degrades(self) -> None:
        assert is_valid_transition(S.INDEXING, S.DEGRADED)
        assert not is_valid_transition(S.EMBEDDING, S.DEGRADED)

    def test_requeue_from_terminal_failures_only(self) -> None:
        assert is_valid_transition(S.DEAD_LETTERED, S.QUEUED)
        assert is_valid_transition(S.DEGRADED, S.QUEUED)
        assert not is_valid_transition(S.INDEXED, S.QUEUED)
        assert not is_valid_transition(S.FAILED, S.QUEUED)

    def test_lease_takeover_reenters_same_stage(self) -> None:
        assert is_valid_transition(S.CHUNKING, S.CHUNKING)
        assert not is_valid_transition(S.CHUNKING, S.EMBEDDING)


class TestNextStage:
    def test_resumable_states(self) -> None:
        assert next_stage(S.QUEUED) is PipelineStage.OCR
        assert next_stage(S.OCR_DONE) is PipelineStage.CHUNK
        assert next_stage(S.CHUNKING_DONE) is PipelineStage.EMBED
        assert next_stage(S.EMBEDDING_DONE) is PipelineStage.INDEX

    def test_running_state_reruns_itself(self) -> None:
        assert next_stage(S.EMBEDDING) is PipelineStage.EMBED

    def test_failed_uses_failed_stage(self) -> None:
        assert next_stage(S.FAILED, PipelineStage.INDEX) is PipelineStage.INDEX

    def test_failed_without_stage_raises(self) -> None:
        with pytest.raises(PipelineError):
            next_stage(S.FAILED)

    @pytest.mark.parametrize("terminal", [S.INDEXED, S.DEAD_LETTERED, S.DEGRADED])
    def test_terminal_states_have_no_stage(self, terminal: ProcessingState) -> None:
        assert is_terminal(terminal)
        assert next_stage(terminal) is None


def test_stage_state_pairs() -> None:
    assert running_state(PipelineStage.OCR) is S.OCR_RUNNING
    assert done_state(PipelineStage.INDEX) is S.INDEXED


def test_validate_transition_raises() -> None:
    with pytest.raises(PipelineError, match="Illegal state transition"):
        validate_transition(S.QUEUED, S.INDEXED)
