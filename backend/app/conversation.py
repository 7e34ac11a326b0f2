"""Lesson conversation: the append-only turn log around the phase machine.

A message cycle appends the student turn, asks the coach model for a reply
with the full history, extracts directives from the reply, appends the
stripped coach turn and applies any phase transition. Phase, phase state and
history are written in one commit, and only after the model has answered, so
a failed model call leaves the session exactly as it was.
"""
from __future__ import annotations
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy.orm import Session

from .catalog import Catalog, Lesson
from .errors import NotFoundError, ValidationError
from .markers import CoachMarkers, extract_markers, strip_phase_markers
from .models import Child, LessonProgress, LessonSession, StudentPreference, WritingSample
from .phases import Phase, PhaseState, apply_coach_turn
from .prompts import build_greeting_request, build_system_prompt
from .quality_gate import count_words

logger = logging.getLogger(__name__)


# Student messages at least this long in the assessment phase can be submitted as-is
ASSESSMENT_READY_WORDS = 15


class ChatModel(Protocol):
	async def chat(self, system_prompt: str, turns: Sequence[Dict[str, Any]]) -> str: ...


def new_turn(role: str, content: str, answer_meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
	turn: Dict[str, Any] = {
		"id": uuid.uuid4().hex,
		"role": role,
		"content": content,
		"timestamp": datetime.utcnow().isoformat(),
	}
	if answer_meta:
		turn["answerMeta"] = answer_meta
	return turn


def load_history(session: LessonSession) -> List[Dict[str, Any]]:
	try:
		history = json.loads(session.conversation_history or "[]")
	except ValueError:
		logger.warning("Session %s has unreadable history; starting empty", session.id)
		return []
	return history if isinstance(history, list) else []


def load_state(session: LessonSession) -> PhaseState:
	try:
		return PhaseState.model_validate_json(session.phase_state or "{}")
	except ValueError:
		logger.warning("Session %s has unreadable phase state; using defaults", session.id)
		return PhaseState()


def store_state(session: LessonSession, state: PhaseState) -> None:
	session.phase_state = state.model_dump_json()


def append_turns(session: LessonSession, history: List[Dict[str, Any]], *turns: Dict[str, Any]) -> List[Dict[str, Any]]:
	extended = list(history) + list(turns)
	session.conversation_history = json.dumps(extended)
	return extended


def answer_meta(markers: CoachMarkers) -> Optional[Dict[str, Any]]:
	if not markers.answer_type:
		return None
	return {
		"answerType": markers.answer_type,
		"options": markers.options,
		"passage": markers.passage,
		"prompt": markers.answer_prompt,
	}


def touch_lesson_progress(db: Session, child_id: str, lesson_id: str, **fields: Any) -> LessonProgress:
	"""Get-or-create the progress row and set ``fields`` on it. Does not commit."""
	row = (
		db.query(LessonProgress)
		.filter(LessonProgress.child_id == child_id, LessonProgress.lesson_id == lesson_id)
		.first()
	)
	if row is None:
		row = LessonProgress(child_id=child_id, lesson_id=lesson_id, status="in_progress", current_phase=Phase.INSTRUCTION.value, started_at=datetime.utcnow())
		db.add(row)
	for key, value in fields.items():
		setattr(row, key, value)
	return row


def require_lesson(catalog: Catalog, lesson_id: str) -> Lesson:
	lesson = catalog.get_lesson(lesson_id)
	if lesson is None:
		raise NotFoundError(f"Lesson {lesson_id} not found")
	return lesson


def _system_prompt(catalog: Catalog, lesson: Lesson, phase: Phase, state: PhaseState, child: Child) -> str:
	return build_system_prompt(
		lesson,
		phase,
		state,
		tier=child.tier,
		rubric=catalog.get_rubric(lesson.rubric_id),
		student_name=child.name,
	)


async def start_session(db: Session, catalog: Catalog, model: ChatModel, child: Child, lesson_id: str) -> Tuple[LessonSession, bool]:
	"""Resume the child's open session for the lesson, or open a new one.

	Returns ``(session, resumed)``.
	"""
	lesson = require_lesson(catalog, lesson_id)
	existing = (
		db.query(LessonSession)
		.filter(
			LessonSession.child_id == child.id,
			LessonSession.lesson_id == lesson.id,
			LessonSession.phase != Phase.FEEDBACK.value,
		)
		.order_by(LessonSession.created_at.desc())
		.first()
	)
	if existing is not None:
		return existing, True

	state = PhaseState()
	prompt = _system_prompt(catalog, lesson, Phase.INSTRUCTION, state, child)
	raw = await model.chat(prompt, [{"role": "student", "content": build_greeting_request(lesson, child.name)}])
	markers = extract_markers(raw)
	outcome = apply_coach_turn(Phase.INSTRUCTION, state, markers)

	session = LessonSession(child_id=child.id, lesson_id=lesson.id, phase=outcome.phase.value)
	store_state(session, outcome.state)
	append_turns(session, [], new_turn("coach", strip_phase_markers(raw), answer_meta(markers)))
	db.add(session)
	progress = touch_lesson_progress(db, child.id, lesson.id, current_phase=outcome.phase.value)
	if progress.status != "completed":
		progress.status = "in_progress"
	db.commit()
	db.refresh(session)
	logger.info("Started session %s for child %s on %s", session.id, child.id, lesson.id)
	return session, False


@dataclass
class MessageResult:
	turn: Dict[str, Any]
	phase: Phase
	phase_update: Optional[str]
	step_update: Optional[int]
	guided_stage_update: Optional[int]
	assessment_ready: bool


async def run_coach_turn(db: Session, catalog: Catalog, model: ChatModel, session: LessonSession, child: Child, message: str) -> MessageResult:
	text = (message or "").strip()
	if not text:
		raise ValidationError("message is required")
	lesson = require_lesson(catalog, session.lesson_id)
	phase = Phase(session.phase)
	state = load_state(session)
	history = load_history(session)

	student_turn = new_turn("student", text)
	prompt = _system_prompt(catalog, lesson, phase, state, child)
	raw = await model.chat(prompt, history + [student_turn])

	markers = extract_markers(raw)
	detected = markers.detected()
	if detected:
		logger.debug("Session %s markers: %s", session.id, detected)
	coach_turn = new_turn("coach", strip_phase_markers(raw), answer_meta(markers))
	outcome = apply_coach_turn(phase, state, markers)

	append_turns(session, history, student_turn, coach_turn)
	store_state(session, outcome.state)
	session.phase = outcome.phase.value
	if outcome.transition is not None:
		touch_lesson_progress(db, child.id, lesson.id, current_phase=outcome.phase.value)
		logger.info("Session %s: %s -> %s", session.id, phase.value, outcome.phase.value)
	db.commit()

	_save_learner_signals(db, child.id, lesson.id, markers)

	return MessageResult(
		turn=coach_turn,
		phase=outcome.phase,
		phase_update=outcome.transition.value if outcome.transition else None,
		step_update=outcome.step_update,
		guided_stage_update=outcome.guided_stage_update,
		assessment_ready=outcome.phase == Phase.ASSESSMENT and count_words(text) >= ASSESSMENT_READY_WORDS,
	)


def _save_learner_signals(db: Session, child_id: str, lesson_id: str, markers: CoachMarkers) -> None:
	"""Persist detected preferences and writing samples; failures are only logged."""
	if not markers.preferences and not markers.samples:
		return
	try:
		for pref in markers.preferences:
			db.add(StudentPreference(child_id=child_id, category=pref.category, value=pref.value, source=lesson_id))
		for sample in markers.samples:
			db.add(WritingSample(child_id=child_id, lesson_id=lesson_id, sample_type=sample.type, criterion=sample.criterion, excerpt=sample.excerpt))
		db.commit()
	except Exception:
		logger.exception("Could not save learner signals for child %s", child_id)
		db.rollback()
