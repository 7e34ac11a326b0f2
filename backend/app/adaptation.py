"""Automatic curriculum adaptation from recent score trends.

Two triggers, checked in this order after every grading event:

* struggling: the three most recent overall scores are all below 2.0, so the
  next pending weeks get foundational (unit 1) lessons at the front;
* excelling: the five most recent overall scores are all above 3.5, so the
  next pending weeks get advanced (unit 3+) lessons at the back.

At most one adaptation happens per event and it is recorded as a single
CurriculumRevision. Weeks that are completed or in progress are never touched.
"""
from __future__ import annotations
import json
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from .catalog import Catalog, Lesson
from .curriculum import get_active_curriculum, get_weeks, week_lesson_ids
from .models import Assessment, Child, CurriculumRevision, CurriculumWeek

logger = logging.getLogger(__name__)


RECENT_WINDOW = 10
MIN_HISTORY = 3
STRUGGLING_RUN = 3
STRUGGLING_BELOW = 2.0
EXCELLING_RUN = 5
EXCELLING_ABOVE = 3.5
WEEKS_TO_REWRITE = 2

STRUGGLING = "auto_struggling"
EXCELLING = "auto_excelling"

_DESCRIPTIONS = {
	STRUGGLING: "Automatically added more foundational lessons due to low scores on recent assessments.",
	EXCELLING: "Automatically advanced to more challenging lessons due to consistently high scores.",
}


def detect_trend(recent_scores: Sequence[float]) -> Optional[str]:
	"""``recent_scores`` is newest first."""
	if len(recent_scores) < MIN_HISTORY:
		return None
	if all(s < STRUGGLING_BELOW for s in recent_scores[:STRUGGLING_RUN]):
		return STRUGGLING
	if len(recent_scores) >= EXCELLING_RUN and all(s > EXCELLING_ABOVE for s in recent_scores[:EXCELLING_RUN]):
		return EXCELLING
	return None


def _candidates(catalog: Catalog, tier: int, reason: str) -> List[Lesson]:
	lessons = catalog.lessons_for_tier(tier)
	if reason == STRUGGLING:
		return [l for l in lessons if l.unit_number == 1]
	return [l for l in lessons if l.unit_number >= 3]


def rewrite_week(lesson_ids: List[str], candidates: Sequence[Lesson], reason: str) -> List[str]:
	"""Swap up to half of a week's lessons for candidates not already in it.

	Slots that already hold a candidate are left alone, so rewriting an
	adapted week again changes nothing.
	"""
	new_ids = list(lesson_ids)
	if not new_ids:
		return new_ids
	candidate_ids = {c.id for c in candidates}
	replace_count = max(1, len(new_ids) // 2)
	pool = iter(c.id for c in candidates)
	for i in range(replace_count):
		index = i if reason == STRUGGLING else len(new_ids) - 1 - i
		if new_ids[index] in candidate_ids:
			continue
		pick = next((cid for cid in pool if cid not in new_ids), None)
		if pick is None:
			break
		new_ids[index] = pick
	return new_ids


def check_curriculum_adaptation(db: Session, catalog: Catalog, child_id: str) -> Optional[CurriculumRevision]:
	"""Adapt the child's active curriculum if the recent trend calls for it. Commits."""
	curriculum = get_active_curriculum(db, child_id)
	if curriculum is None:
		return None
	recent = (
		db.query(Assessment.overall_score)
		.filter(Assessment.child_id == child_id)
		.order_by(Assessment.id.desc())
		.limit(RECENT_WINDOW)
		.all()
	)
	reason = detect_trend([row.overall_score for row in recent])
	if reason is None:
		return None
	child = db.get(Child, child_id)
	if child is None:
		return None
	candidates = _candidates(catalog, child.tier, reason)
	if not candidates:
		return None

	pending: List[CurriculumWeek] = [w for w in get_weeks(db, curriculum.id) if w.status == "pending"][:WEEKS_TO_REWRITE]
	previous_plan: List[Dict[str, object]] = []
	new_plan: List[Dict[str, object]] = []
	for week in pending:
		before = week_lesson_ids(week)
		after = rewrite_week(before, candidates, reason)
		if after == before:
			continue
		previous_plan.append({"weekNumber": week.week_number, "lessonIds": before})
		new_plan.append({"weekNumber": week.week_number, "lessonIds": after})
		week.lesson_ids = json.dumps(after)
	if not new_plan:
		return None

	revision = CurriculumRevision(
		curriculum_id=curriculum.id,
		reason=reason,
		description=_DESCRIPTIONS[reason],
		previous_plan=json.dumps(previous_plan),
		new_plan=json.dumps(new_plan),
	)
	db.add(revision)
	db.commit()
	logger.info("Curriculum %s adapted (%s): weeks %s", curriculum.id, reason, [p["weekNumber"] for p in new_plan])
	return revision
