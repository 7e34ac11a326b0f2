from __future__ import annotations
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..access import get_owned_child
from ..badges import get_badge
from ..catalog import Catalog, get_catalog
from ..db import get_db
from ..errors import ValidationError
from ..gemini_client import GeminiClient, get_optional_coach_model
from ..models import Achievement, Child, SkillProgress, Streak
from ..reports import child_report, lesson_report, portfolio
from ..schemas import BadgeView, BadgesResponse, ChildView, CreateChildRequest, MarkSeenRequest, StreakGoalRequest, StreakView
from ..settings import settings
from ..skills import SKILL_DEFINITIONS
from .auth import User, get_current_user

router = APIRouter(prefix="/children", tags=["children"])

logger = logging.getLogger(__name__)


def _streak_view(row: Streak | None) -> StreakView:
	if row is None:
		return StreakView(weekly_goal=settings.default_weekly_goal)
	return StreakView(
		current_streak=row.current_streak,
		longest_streak=row.longest_streak,
		last_active_date=row.last_active_date.isoformat() if row.last_active_date else None,
		weekly_goal=row.weekly_goal,
		weekly_completed=row.weekly_completed,
	)


@router.post("", response_model=ChildView, status_code=201)
async def create_child(req: CreateChildRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	if not name:
		raise ValidationError("name is required")
	child = Child(parent_username=user.username, name=name, tier=req.tier)
	db.add(child)
	db.commit()
	db.refresh(child)
	return ChildView(id=child.id, name=child.name, tier=child.tier)


@router.get("", response_model=List[ChildView])
async def list_children(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = db.query(Child).filter(Child.parent_username == user.username).order_by(Child.created_at.asc()).all()
	return [ChildView(id=c.id, name=c.name, tier=c.tier) for c in rows]


@router.get("/{child_id}/badges", response_model=BadgesResponse)
async def list_badges(child_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	rows = (
		db.query(Achievement)
		.filter(Achievement.child_id == child_id)
		.order_by(Achievement.unlocked_at.desc(), Achievement.id.desc())
		.all()
	)
	badges: List[BadgeView] = []
	for row in rows:
		definition = get_badge(row.badge_id)
		if definition is None:
			logger.warning("Child %s holds unknown badge %s", child_id, row.badge_id)
			continue
		badges.append(BadgeView(
			**definition.model_dump(),
			unlocked_at=row.unlocked_at.isoformat() if row.unlocked_at else None,
			seen=row.seen,
		))
	return BadgesResponse(badges=badges, total=len(badges), unseen=sum(1 for b in badges if not b.seen))


@router.post("/{child_id}/badges/seen")
async def mark_badges_seen(child_id: str, req: MarkSeenRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	if not req.badge_ids:
		raise ValidationError("badgeIds must be a non-empty list")
	updated = (
		db.query(Achievement)
		.filter(Achievement.child_id == child_id, Achievement.badge_id.in_(req.badge_ids), Achievement.seen.is_(False))
		.update({Achievement.seen: True}, synchronize_session=False)
	)
	db.commit()
	return {"updated": updated}


@router.get("/{child_id}/streak", response_model=StreakView)
async def get_streak(child_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	return _streak_view(db.get(Streak, child_id))


@router.put("/{child_id}/streak/goal", response_model=StreakView)
async def set_streak_goal(child_id: str, req: StreakGoalRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	goal = req.weekly_goal
	if isinstance(goal, bool) or not isinstance(goal, int) or not 1 <= goal <= 7:
		raise ValidationError("weeklyGoal must be an integer between 1 and 7")
	row = db.get(Streak, child_id)
	if row is None:
		row = Streak(child_id=child_id, current_streak=0, longest_streak=0, weekly_completed=0, weekly_goal=goal)
		db.add(row)
	else:
		row.weekly_goal = goal
	db.commit()
	return _streak_view(row)


@router.get("/{child_id}/skills")
async def get_skills(child_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	get_owned_child(db, child_id, user.username)
	rows = db.query(SkillProgress).filter(SkillProgress.child_id == child_id).order_by(SkillProgress.skill_category, SkillProgress.skill_name).all()
	grouped: Dict[str, List[dict]] = defaultdict(list)
	for row in rows:
		grouped[row.skill_category].append({
			"skillName": row.skill_name,
			"displayName": SKILL_DEFINITIONS.get(row.skill_category, {}).get(row.skill_name, row.skill_name),
			"score": round(row.score, 2),
			"level": row.level,
			"totalAttempts": row.total_attempts,
			"lastAssessedAt": row.last_assessed_at.isoformat() if row.last_assessed_at else None,
		})
	return {"childId": child_id, "categories": dict(grouped)}


@router.get("/{child_id}/portfolio")
async def get_portfolio(
	child_id: str,
	page: int = 1,
	limit: int = 10,
	writing_type: Optional[str] = Query(None, alias="type"),
	sort: str = "newest",
	include_revisions: bool = Query(False, alias="includeRevisions"),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
):
	get_owned_child(db, child_id, user.username)
	return portfolio(db, catalog, child_id, page=page, limit=limit, writing_type=writing_type, sort=sort, include_revisions=include_revisions)


@router.get("/{child_id}/report")
async def get_report(
	child_id: str,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
):
	child = get_owned_child(db, child_id, user.username)
	return child_report(db, catalog, child)


@router.get("/{child_id}/report/{lesson_id}")
async def get_lesson_report(
	child_id: str,
	lesson_id: str,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
	model: Optional[GeminiClient] = Depends(get_optional_coach_model),
):
	child = get_owned_child(db, child_id, user.username)
	return await lesson_report(db, catalog, model, child, lesson_id)
