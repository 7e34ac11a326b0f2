"""Parent-facing read models: writing portfolio and progress reports.

Everything here reads the append-only submission and assessment tables; the
only side effect is the optional model call that drafts at-home tips for a
lesson report, and its failure just leaves the tips out.
"""
from __future__ import annotations
import json
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .catalog import Catalog, Lesson
from .conversation import ChatModel, require_lesson
from .models import Achievement, Assessment, Child, LessonProgress, LessonSession, SkillProgress, Streak, WritingSubmission
from .prompts import build_parent_tips_prompt
from .settings import settings
from .skills import SKILL_DEFINITIONS

logger = logging.getLogger(__name__)


TYPE_PREFIXES = {"narrative": "N", "persuasive": "P", "expository": "E", "descriptive": "D"}
PORTFOLIO_SORTS = ("newest", "oldest", "highest")
MAX_PAGE_SIZE = 50
RECENT_ASSESSMENTS = 10
ACTIVITY_DAYS = 90
PARENT_TIPS_QUESTION = "What can I do at home to help my child improve?"


def _loads(raw: Optional[str], default: Any) -> Any:
	try:
		return json.loads(raw) if raw else default
	except ValueError:
		return default


def _feedback_view(assessment: Optional[Assessment]) -> Optional[Dict[str, Any]]:
	if assessment is None:
		return None
	feedback = _loads(assessment.feedback, {})
	return {
		"scores": _loads(assessment.scores, {}),
		"overallScore": assessment.overall_score,
		"strength": feedback.get("strength"),
		"growth": feedback.get("growth"),
		"encouragement": feedback.get("encouragement"),
	}


def _submission_view(catalog: Catalog, submission: WritingSubmission, lesson_id: str, assessment: Optional[Assessment]) -> Dict[str, Any]:
	lesson = catalog.get_lesson(lesson_id)
	return {
		"id": submission.id,
		"lessonId": lesson_id,
		"lessonTitle": lesson.title if lesson else "Unknown Lesson",
		"lessonType": lesson.type if lesson else "unknown",
		"lessonUnit": lesson.unit if lesson else "",
		"text": submission.text,
		"wordCount": submission.word_count,
		"revisionNumber": submission.revision_number,
		"createdAt": submission.created_at.isoformat() if submission.created_at else None,
		"feedback": _feedback_view(assessment),
	}


def _submission_rows(db: Session, child_id: str):
	return (
		db.query(WritingSubmission, LessonSession.lesson_id, Assessment)
		.join(LessonSession, LessonSession.id == WritingSubmission.session_id)
		.outerjoin(Assessment, Assessment.submission_id == WritingSubmission.id)
		.filter(WritingSubmission.child_id == child_id)
	)


def portfolio(
	db: Session,
	catalog: Catalog,
	child_id: str,
	*,
	page: int = 1,
	limit: int = 10,
	writing_type: Optional[str] = None,
	sort: str = "newest",
	include_revisions: bool = False,
) -> Dict[str, Any]:
	"""One page of the child's original submissions with their grading.

	``include_revisions`` nests each original's revisions under it instead of
	listing them separately. Unknown types and sorts fall back to "all" and
	"newest".
	"""
	page = max(1, page)
	limit = min(MAX_PAGE_SIZE, max(1, limit))
	query = _submission_rows(db, child_id).filter(WritingSubmission.revision_number == 0)
	prefix = TYPE_PREFIXES.get(writing_type or "")
	if prefix:
		query = query.filter(LessonSession.lesson_id.like(f"{prefix}%"))

	if sort == "oldest":
		order = (WritingSubmission.created_at.asc(), WritingSubmission.id.asc())
	elif sort == "highest":
		order = (Assessment.overall_score.desc(), WritingSubmission.id.desc())
	else:
		order = (WritingSubmission.created_at.desc(), WritingSubmission.id.desc())

	total = query.count()
	rows = query.order_by(*order).offset((page - 1) * limit).limit(limit).all()
	items = [_submission_view(catalog, sub, lesson_id, assessment) for sub, lesson_id, assessment in rows]

	if include_revisions and rows:
		session_ids = [sub.session_id for sub, _, _ in rows]
		revisions: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
		revision_rows = (
			_submission_rows(db, child_id)
			.filter(WritingSubmission.session_id.in_(session_ids), WritingSubmission.revision_number > 0)
			.order_by(WritingSubmission.revision_number.asc())
			.all()
		)
		for sub, lesson_id, assessment in revision_rows:
			revisions[sub.session_id].append(_submission_view(catalog, sub, lesson_id, assessment))
		for item, (sub, _, _) in zip(items, rows):
			item["revisions"] = revisions.get(sub.session_id, [])

	return {"submissions": items, "total": total, "page": page, "limit": limit}


def _average(values: List[float]) -> Optional[float]:
	return round(sum(values) / len(values), 1) if values else None


def _activity_timeline(progress: List[LessonProgress], submissions: List[WritingSubmission], today: date) -> List[Dict[str, Any]]:
	since = today - timedelta(days=ACTIVITY_DAYS)
	counts: Dict[str, int] = defaultdict(int)
	stamps = [p.completed_at for p in progress if p.status == "completed" and p.completed_at]
	stamps += [s.created_at for s in submissions if s.created_at]
	for stamp in stamps:
		if stamp.date() >= since:
			counts[stamp.date().isoformat()] += 1
	return [{"date": day, "count": counts[day]} for day in sorted(counts)]


def child_report(db: Session, catalog: Catalog, child: Child, *, today: Optional[date] = None) -> Dict[str, Any]:
	"""Overall progress summary for a parent."""
	today = today or datetime.utcnow().date()
	progress = db.query(LessonProgress).filter(LessonProgress.child_id == child.id).all()
	assessments = db.query(Assessment).filter(Assessment.child_id == child.id).order_by(Assessment.id.desc()).all()
	submissions = db.query(WritingSubmission).filter(WritingSubmission.child_id == child.id).all()
	badge_count = db.query(Achievement).filter(Achievement.child_id == child.id).count()
	skills = db.query(SkillProgress).filter(SkillProgress.child_id == child.id).order_by(SkillProgress.skill_category, SkillProgress.skill_name).all()
	streak = db.get(Streak, child.id)

	by_type: Dict[str, List[float]] = defaultdict(list)
	for row in assessments:
		lesson = catalog.get_lesson(row.lesson_id)
		by_type[lesson.type if lesson else "unknown"].append(row.overall_score)

	recent = []
	for row in assessments[:RECENT_ASSESSMENTS]:
		lesson = catalog.get_lesson(row.lesson_id)
		recent.append({
			"lessonId": row.lesson_id,
			"lessonTitle": lesson.title if lesson else "Unknown Lesson",
			"lessonType": lesson.type if lesson else "unknown",
			"overallScore": row.overall_score,
			"createdAt": row.created_at.isoformat() if row.created_at else None,
		})

	return {
		"child": {"id": child.id, "name": child.name, "tier": child.tier},
		"summary": {
			"totalLessons": len(progress),
			"completedLessons": sum(1 for p in progress if p.status == "completed"),
			"averageScore": _average([a.overall_score for a in assessments]),
			"totalWords": sum(s.word_count for s in submissions),
			"totalSubmissions": len(submissions),
			"badgeCount": badge_count,
		},
		"skills": [
			{
				"category": s.skill_category,
				"skillName": s.skill_name,
				"displayName": SKILL_DEFINITIONS.get(s.skill_category, {}).get(s.skill_name, s.skill_name.replace("_", " ")),
				"avgScore": round(s.score, 1),
			}
			for s in skills
		],
		"streak": {
			"currentStreak": streak.current_streak if streak else 0,
			"longestStreak": streak.longest_streak if streak else 0,
			"weeklyGoal": streak.weekly_goal if streak else settings.default_weekly_goal,
			"weeklyCompleted": streak.weekly_completed if streak else 0,
		},
		"recentAssessments": recent,
		"scoresByType": [
			{"type": kind, "avgScore": _average(scores), "count": len(scores)}
			for kind, scores in sorted(by_type.items())
		],
		"activityTimeline": _activity_timeline(progress, submissions, today),
	}


async def parent_tips(model: Optional[ChatModel], child: Child, lesson: Lesson, assessment: Assessment) -> Optional[str]:
	if model is None:
		return None
	feedback = _loads(assessment.feedback, {})
	if not feedback.get("growth"):
		return None
	prompt = build_parent_tips_prompt(child.name, lesson, feedback, assessment.overall_score)
	try:
		return await model.chat(prompt, [{"role": "student", "content": PARENT_TIPS_QUESTION}])
	except Exception:
		logger.warning("Could not draft parent tips for child %s on %s", child.id, lesson.id, exc_info=True)
		return None


def _lesson_rows(db: Session, child_id: str, lesson_id: str) -> List[Tuple[WritingSubmission, str, Optional[Assessment]]]:
	return (
		_submission_rows(db, child_id)
		.filter(LessonSession.lesson_id == lesson_id)
		.order_by(WritingSubmission.revision_number.asc(), WritingSubmission.id.asc())
		.all()
	)


async def lesson_report(db: Session, catalog: Catalog, model: Optional[ChatModel], child: Child, lesson_id: str) -> Dict[str, Any]:
	lesson = require_lesson(catalog, lesson_id)
	progress = (
		db.query(LessonProgress)
		.filter(LessonProgress.child_id == child.id, LessonProgress.lesson_id == lesson.id)
		.first()
	)
	latest = (
		db.query(Assessment)
		.filter(Assessment.child_id == child.id, Assessment.lesson_id == lesson.id)
		.order_by(Assessment.id.desc())
		.first()
	)
	assessment = None
	if latest is not None:
		assessment = {
			"overallScore": latest.overall_score,
			"scores": _loads(latest.scores, {}),
			"feedback": _loads(latest.feedback, None),
			"createdAt": latest.created_at.isoformat() if latest.created_at else None,
		}
	return {
		"lesson": {
			"id": lesson.id,
			"title": lesson.title,
			"type": lesson.type,
			"unit": lesson.unit,
			"learningObjectives": list(lesson.learning_objectives),
		},
		"status": progress.status if progress else "not_started",
		"assessment": assessment,
		"submissions": [_submission_view(catalog, sub, lid, a) for sub, lid, a in _lesson_rows(db, child.id, lesson.id)],
		"parentTips": await parent_tips(model, child, lesson, latest) if latest is not None else None,
	}
