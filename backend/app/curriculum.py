from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .catalog import Catalog
from .models import Curriculum, CurriculumRevision, CurriculumWeek

logger = logging.getLogger(__name__)


ACTIVE = "ACTIVE"
ARCHIVED = "ARCHIVED"


def week_lesson_ids(week: CurriculumWeek) -> List[str]:
	try:
		value = json.loads(week.lesson_ids or "[]")
	except ValueError:
		logger.warning("Curriculum week %s has unreadable lesson ids", week.id)
		return []
	return [str(v) for v in value] if isinstance(value, list) else []


def build_plan(catalog: Catalog, tier: int, lessons_per_week: int) -> List[Dict[str, Any]]:
	"""Split the tier's lessons, in catalog order, into weeks of ``lessons_per_week``."""
	lessons = catalog.lessons_for_tier(tier)
	per_week = max(1, lessons_per_week)
	weeks: List[Dict[str, Any]] = []
	for start in range(0, len(lessons), per_week):
		chunk = lessons[start : start + per_week]
		weeks.append({
			"week_number": len(weeks) + 1,
			"theme": chunk[0].unit,
			"lesson_ids": [lesson.id for lesson in chunk],
		})
	return weeks


def get_active_curriculum(db: Session, child_id: str) -> Optional[Curriculum]:
	return (
		db.query(Curriculum)
		.filter(Curriculum.child_id == child_id, Curriculum.status == ACTIVE)
		.order_by(Curriculum.created_at.desc())
		.first()
	)


def get_weeks(db: Session, curriculum_id: str) -> List[CurriculumWeek]:
	return (
		db.query(CurriculumWeek)
		.filter(CurriculumWeek.curriculum_id == curriculum_id)
		.order_by(CurriculumWeek.week_number.asc())
		.all()
	)


def get_revisions(db: Session, curriculum_id: str) -> List[CurriculumRevision]:
	return (
		db.query(CurriculumRevision)
		.filter(CurriculumRevision.curriculum_id == curriculum_id)
		.order_by(CurriculumRevision.id.desc())
		.all()
	)


def create_curriculum(db: Session, catalog: Catalog, child_id: str, tier: int, lessons_per_week: int) -> Curriculum:
	"""Archive any active curriculum for the child and store a fresh plan."""
	for old in db.query(Curriculum).filter(Curriculum.child_id == child_id, Curriculum.status == ACTIVE).all():
		old.status = ARCHIVED
	curriculum = Curriculum(child_id=child_id, status=ACTIVE)
	db.add(curriculum)
	db.flush()
	for week in build_plan(catalog, tier, lessons_per_week):
		db.add(CurriculumWeek(
			curriculum_id=curriculum.id,
			week_number=week["week_number"],
			theme=week["theme"],
			lesson_ids=json.dumps(week["lesson_ids"]),
			status="in_progress" if week["week_number"] == 1 else "pending",
		))
	db.commit()
	db.refresh(curriculum)
	logger.info("Created curriculum %s for child %s (tier %s)", curriculum.id, child_id, tier)
	return curriculum
