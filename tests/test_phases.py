"""Tests for the lesson phase state machine."""

from __future__ import annotations

from datetime import datetime

import pytest

from backend.app.errors import ValidationError
from backend.app.markers import extract_markers
from backend.app.phases import Phase, PhaseState, apply_coach_turn, complete_assessment, require_phase

NOW = datetime(2026, 3, 2, 10, 30)


class TestInstruction:
	def test_guided_transition_suppressed_without_comprehension(self) -> None:
		outcome = apply_coach_turn(Phase.INSTRUCTION, PhaseState(), extract_markers("Let's go! [PHASE_TRANSITION: guided]"))
		assert outcome.phase == Phase.INSTRUCTION
		assert outcome.transition is None
		assert outcome.suppressed_transition == Phase.GUIDED
		assert not outcome.state.instruction_completed

	def test_guided_transition_after_comprehension_passed(self) -> None:
		state = PhaseState(comprehension_check_passed=True)
		outcome = apply_coach_turn(Phase.INSTRUCTION, state, extract_markers("[PHASE_TRANSITION: guided]"))
		assert outcome.phase == Phase.GUIDED
		assert outcome.transition == Phase.GUIDED
		assert outcome.state.instruction_completed

	def test_comprehension_and_transition_in_same_reply(self) -> None:
		reply = "Correct! [COMPREHENSION_CHECK: passed] [PHASE_TRANSITION: guided]"
		outcome = apply_coach_turn(Phase.INSTRUCTION, PhaseState(), extract_markers(reply))
		assert outcome.phase == Phase.GUIDED

	def test_step_marker_updates_step(self) -> None:
		outcome = apply_coach_turn(Phase.INSTRUCTION, PhaseState(), extract_markers("[STEP: 3]"))
		assert outcome.state.phase1_step == 3
		assert outcome.step_update == 3

	def test_input_state_not_mutated(self) -> None:
		state = PhaseState()
		apply_coach_turn(Phase.INSTRUCTION, state, extract_markers("[COMPREHENSION_CHECK: passed] [HINT_GIVEN]"))
		assert state == PhaseState()


class TestGuided:
	def test_every_message_counts_as_attempt(self) -> None:
		state = PhaseState(comprehension_check_passed=True, instruction_completed=True)
		for expected in (1, 2, 3):
			state = apply_coach_turn(Phase.GUIDED, state, extract_markers("Keep going.")).state
			assert state.guided_attempts == expected

	def test_assessment_transition_sets_writing_start(self) -> None:
		outcome = apply_coach_turn(Phase.GUIDED, PhaseState(), extract_markers("[PHASE_TRANSITION: assessment]"), now=NOW)
		assert outcome.phase == Phase.ASSESSMENT
		assert outcome.state.guided_complete
		assert outcome.state.writing_started_at == NOW

	def test_hints_counted(self) -> None:
		state = apply_coach_turn(Phase.GUIDED, PhaseState(), extract_markers("Try a sound word. [HINT_GIVEN]")).state
		assert state.hints_given == 1


class TestOrdering:
	@pytest.mark.parametrize(
		"phase, reply",
		[
			(Phase.INSTRUCTION, "[PHASE_TRANSITION: assessment]"),
			(Phase.ASSESSMENT, "[PHASE_TRANSITION: guided]"),
			(Phase.FEEDBACK, "[PHASE_TRANSITION: assessment]"),
			(Phase.GUIDED, "[PHASE_TRANSITION: guided]"),
		],
	)
	def test_only_next_phase_is_reachable(self, phase: Phase, reply: str) -> None:
		state = PhaseState(comprehension_check_passed=True)
		outcome = apply_coach_turn(phase, state, extract_markers(reply))
		assert outcome.phase == phase
		assert outcome.transition is None

	def test_feedback_only_through_grading(self) -> None:
		assert complete_assessment("assessment") == Phase.FEEDBACK
		with pytest.raises(ValidationError):
			complete_assessment("guided")

	def test_require_phase_mismatch(self) -> None:
		with pytest.raises(ValidationError) as info:
			require_phase("guided", Phase.ASSESSMENT, "Submitting writing")
		assert info.value.code == "phase_mismatch"
		assert info.value.status_code == 400
