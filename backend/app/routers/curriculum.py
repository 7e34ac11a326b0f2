from __future__ import annotations
import json

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import get_owned_child
from ..catalog import Catalog, get_catalog
from ..curriculum import create_curriculum, get_active_curriculum, get_revisions, get_weeks, week_lesson_ids
from ..db import get_db
from ..errors import NotFoundError
from ..models import Curriculum
from ..schemas import CurriculumRevisionView, CurriculumView, CurriculumWeekView
from ..settings import settings
from .auth import User, get_current_user

router = APIRouter(prefix="/curriculum", tags=["curriculum"])


def _curriculum_view(db: Session, curriculum: Curriculum) -> CurriculumView:
	weeks = [
		CurriculumWeekView(week_number=w.week_number, theme=w.theme, lesson_ids=week_lesson_ids(w), status=w.status)
		for w in get_weeks(db, curriculum.id)
	]
	revisions = [
		CurriculumRevisionView(
			id=r.id,
			reason=r.reason,
			description=r.description,
			previous_plan=json.loads(r.previous_plan),
			new_plan=json.loads(r.new_plan),
			created_at=r.created_at.isoformat() if r.created_at else None,
		)
		for r in get_revisions(db, curriculum.id)
	]
	return CurriculumView(id=curriculum.id, child_id=curriculum.child_id, status=curriculum.status, weeks=weeks, revisions=revisions)


@router.post("/{child_id}", response_model=CurriculumView, status_code=201)
async def generate_curriculum(
	child_id: str,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
):
	child = get_owned_child(db, child_id, user.username)
	curriculum = create_curriculum(db, catalog, child.id, child.tier, settings.curriculum_lessons_per_week)
	return _curriculum_view(db, curriculum)


@router.get("/{child_id}", response_model=CurriculumView)
async def get_curriculum(child_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	curriculum = get_active_curriculum(db, child_id)
	if curriculum is None:
		raise NotFoundError("No active curriculum for this child")
	return _curriculum_view(db, curriculum)
