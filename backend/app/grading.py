"""Submission grading and the revision chain.

Both entry points follow the same order: phase check, quality gate, model
grading, then a single commit holding the submission, its assessment, the
phase-state update and the feedback turn. The progress cascade runs only
after that commit. Nothing is written if the gate rejects the text or the
model call fails.
"""
from __future__ import annotations
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .cascade import GradingEvent, run_progress_cascade
from .catalog import Catalog
from .conversation import append_turns, load_history, load_state, new_turn, require_lesson, store_state, touch_lesson_progress
from .errors import ConflictError, RevisionLimitError, ValidationError
from .evaluator import GradingResult, TextModel, grade_writing
from .models import Assessment, Child, LessonSession, WritingSubmission
from .phases import Phase, complete_assessment, require_phase
from .quality_gate import check_submission

logger = logging.getLogger(__name__)


MAX_REVISIONS = 2


def _new_assessment(session: LessonSession, submission: WritingSubmission, result: GradingResult) -> Assessment:
	return Assessment(
		session_id=session.id,
		child_id=session.child_id,
		lesson_id=session.lesson_id,
		submission_id=submission.id,
		rubric_id=result.rubric_id,
		scores=json.dumps(result.scores),
		overall_score=result.overall_score,
		feedback=result.feedback.model_dump_json(),
	)


def _feedback_text(result: GradingResult, prefix: str = "") -> str:
	fb = result.feedback
	return f"{prefix}{fb.strength}\n\n{fb.growth}\n\n{fb.encouragement}"


def assessment_count(db: Session, session_id: str) -> int:
	return db.query(func.count(Assessment.id)).filter(Assessment.session_id == session_id).scalar() or 0


def latest_assessment(db: Session, session_id: str) -> Optional[Assessment]:
	return db.query(Assessment).filter(Assessment.session_id == session_id).order_by(Assessment.id.desc()).first()


def latest_submission(db: Session, session_id: str) -> Optional[WritingSubmission]:
	return (
		db.query(WritingSubmission)
		.filter(WritingSubmission.session_id == session_id)
		.order_by(WritingSubmission.revision_number.desc(), WritingSubmission.id.desc())
		.first()
	)


def _require_text(text: str) -> str:
	text = (text or "").strip()
	if not text:
		raise ValidationError("text is required")
	return text


@contextmanager
def _graded_write(db: Session, what: str):
	"""Commit everything written inside the block, or nothing.

	A unique violation (flush or commit) means a concurrent request already
	recorded the same submission slot.
	"""
	try:
		yield
		db.commit()
	except IntegrityError as err:
		db.rollback()
		logger.warning("%s lost a concurrent write: %s", what, err.orig)
		raise ConflictError(f"{what} was already recorded by another request. Refresh and try again.") from err


async def submit_writing(db: Session, catalog: Catalog, model: TextModel, session: LessonSession, child: Child, text: str) -> Dict[str, Any]:
	text = _require_text(text)
	require_phase(session.phase, Phase.ASSESSMENT, "Submitting writing")
	lesson = require_lesson(catalog, session.lesson_id)
	word_count = check_submission(text, catalog.min_words_for(lesson))

	result = await grade_writing(model, text, lesson, catalog.get_rubric(lesson.rubric_id), child.tier)

	now = datetime.utcnow()
	with _graded_write(db, "Submission"):
		submission = WritingSubmission(session_id=session.id, child_id=child.id, text=text, word_count=word_count, revision_number=0)
		db.add(submission)
		db.flush()
		db.add(_new_assessment(session, submission, result))
		session.phase = complete_assessment(session.phase).value
		append_turns(session, load_history(session), new_turn("coach", _feedback_text(result)))
		touch_lesson_progress(db, child.id, lesson.id, status="completed", current_phase=Phase.FEEDBACK.value, completed_at=now)

	cascade = run_progress_cascade(GradingEvent(db=db, catalog=catalog, child_id=child.id, lesson_id=lesson.id, overall_score=result.overall_score, now=now))
	return {
		"scores": result.scores,
		"overallScore": result.overall_score,
		"feedback": result.feedback.model_dump(),
		"newBadges": cascade.new_badges,
	}


async def revise_writing(db: Session, catalog: Catalog, model: TextModel, session: LessonSession, child: Child, text: str) -> Dict[str, Any]:
	text = _require_text(text)
	require_phase(session.phase, Phase.FEEDBACK, "Revising")
	# The count fixes both the cap and the slot; a concurrent revision that read the
	# same count collides on UNIQUE(session_id, revision_number).
	count = assessment_count(db, session.id)
	revision_number = max(count, 1)
	if revision_number > MAX_REVISIONS:
		raise RevisionLimitError(f"Maximum revisions reached ({MAX_REVISIONS}).")
	lesson = require_lesson(catalog, session.lesson_id)
	word_count = check_submission(text, catalog.min_words_for(lesson))

	previous = latest_assessment(db, session.id)
	prior_submission = latest_submission(db, session.id)

	result = await grade_writing(model, text, lesson, catalog.get_rubric(lesson.rubric_id), child.tier)

	now = datetime.utcnow()
	with _graded_write(db, f"Revision {revision_number}"):
		submission = WritingSubmission(
			session_id=session.id,
			child_id=child.id,
			text=text,
			word_count=word_count,
			revision_of=prior_submission.id if prior_submission is not None else None,
			revision_number=revision_number,
		)
		db.add(submission)
		db.flush()
		db.add(_new_assessment(session, submission, result))
		state = load_state(session)
		state.revisions_used = revision_number
		store_state(session, state)
		append_turns(session, load_history(session), new_turn("coach", _feedback_text(result, f"Revision {revision_number} feedback: ")))
	logger.info("Session %s revision %d graded %.1f", session.id, revision_number, result.overall_score)

	cascade = run_progress_cascade(GradingEvent(db=db, catalog=catalog, child_id=child.id, lesson_id=lesson.id, overall_score=result.overall_score, now=now))
	previous_scores: Optional[Dict[str, float]] = json.loads(previous.scores) if previous is not None else None
	return {
		"scores": result.scores,
		"overallScore": result.overall_score,
		"feedback": result.feedback.model_dump(),
		"previousScores": previous_scores,
		"previousOverallScore": previous.overall_score if previous is not None else None,
		"revisionNumber": revision_number,
		"revisionsRemaining": max(0, MAX_REVISIONS - revision_number),
		"newBadges": cascade.new_badges,
	}


def session_assessments(db: Session, session_id: str) -> List[Dict[str, Any]]:
	"""All assessments for a session, newest first."""
	rows = db.query(Assessment).filter(Assessment.session_id == session_id).order_by(Assessment.id.desc()).all()
	return [
		{
			"id": row.id,
			"submissionId": row.submission_id,
			"rubricId": row.rubric_id,
			"scores": json.loads(row.scores),
			"overallScore": row.overall_score,
			"feedback": json.loads(row.feedback),
			"createdAt": row.created_at.isoformat() if row.created_at else None,
		}
		for row in rows
	]
