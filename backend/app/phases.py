"""Lesson phase state machine.

A session moves instruction -> guided -> assessment -> feedback and never
backwards. The first two transitions are driven by directives in coach
replies (see ``markers``); assessment -> feedback happens only when a
submission is graded.
"""
from __future__ import annotations
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import ValidationError
from .markers import CoachMarkers

logger = logging.getLogger(__name__)


class Phase(str, Enum):
	INSTRUCTION = "instruction"
	GUIDED = "guided"
	ASSESSMENT = "assessment"
	FEEDBACK = "feedback"


PHASE_ORDER = (Phase.INSTRUCTION, Phase.GUIDED, Phase.ASSESSMENT, Phase.FEEDBACK)


class PhaseState(BaseModel):
	model_config = ConfigDict(extra="ignore")

	instruction_completed: bool = False
	comprehension_check_passed: bool = False
	phase1_step: Optional[int] = None
	guided_stage: Optional[int] = None
	guided_attempts: int = 0
	hints_given: int = 0
	guided_complete: bool = False
	writing_started_at: Optional[datetime] = None
	revisions_used: int = 0


class TurnOutcome(BaseModel):
	phase: Phase
	state: PhaseState
	transition: Optional[Phase] = None
	suppressed_transition: Optional[Phase] = None
	step_update: Optional[int] = None
	guided_stage_update: Optional[int] = None


def is_forward(current: Phase, target: Phase) -> bool:
	return PHASE_ORDER.index(target) == PHASE_ORDER.index(current) + 1


def apply_coach_turn(phase: Phase, state: PhaseState, markers: CoachMarkers, *, now: Optional[datetime] = None) -> TurnOutcome:
	"""Fold one coach reply into the session's phase and counters.

	``phase`` is the phase the student message arrived in. The input state is
	not mutated; the returned outcome carries an updated copy.
	"""
	phase = Phase(phase)
	state = state.model_copy()
	now = now or datetime.utcnow()
	outcome = TurnOutcome(phase=phase, state=state)

	if phase == Phase.INSTRUCTION:
		if markers.comprehension_passed:
			state.comprehension_check_passed = True
		if markers.step is not None:
			state.phase1_step = markers.step
			outcome.step_update = markers.step

	if phase == Phase.GUIDED:
		state.guided_attempts += 1
		if markers.guided_stage is not None:
			state.guided_stage = markers.guided_stage
			outcome.guided_stage_update = markers.guided_stage

	if markers.hint_given:
		state.hints_given += 1

	target = Phase(markers.phase_transition) if markers.phase_transition else None
	if target is None or not is_forward(phase, target):
		return outcome

	if target == Phase.GUIDED:
		if not state.comprehension_check_passed:
			logger.info("Suppressing instruction->guided: comprehension check not passed")
			outcome.suppressed_transition = target
			return outcome
		state.instruction_completed = True
	elif target == Phase.ASSESSMENT:
		state.guided_complete = True
		state.writing_started_at = now

	outcome.phase = target
	outcome.transition = target
	return outcome


def require_phase(current: str, expected: Phase, action: str) -> None:
	if Phase(current) != expected:
		raise ValidationError(
			f"{action} is only allowed during the {expected.value} phase (session is in {current})",
			code="phase_mismatch",
		)


def complete_assessment(current: str) -> Phase:
	"""assessment -> feedback, called only after a successful grading."""
	require_phase(current, Phase.ASSESSMENT, "Grading")
	return Phase.FEEDBACK
