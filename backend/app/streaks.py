from __future__ import annotations
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .models import Streak
from .settings import settings

logger = logging.getLogger(__name__)


def week_start(day: date) -> date:
	"""Monday of the week containing ``day``."""
	return day - timedelta(days=day.weekday())


def update_streak(db: Session, child_id: str, today: Optional[date] = None) -> Optional[Streak]:
	"""Record one day of activity for the child.

	Returns the updated row, or None when the child was already active today
	(in which case nothing is written).
	"""
	today = today or date.today()
	row = db.get(Streak, child_id)
	if row is None:
		row = Streak(
			child_id=child_id,
			current_streak=1,
			longest_streak=1,
			last_active_date=today,
			week_start_date=week_start(today),
			weekly_completed=1,
			weekly_goal=settings.default_weekly_goal,
		)
		db.add(row)
		db.commit()
		return row

	last = row.last_active_date
	if last == today:
		return None

	if last is not None and (today - last).days == 1:
		row.current_streak = (row.current_streak or 0) + 1
	else:
		row.current_streak = 1
	row.longest_streak = max(row.longest_streak or 0, row.current_streak)
	row.last_active_date = today

	this_week = week_start(today)
	if row.week_start_date != this_week:
		row.week_start_date = this_week
		row.weekly_completed = 1
	else:
		row.weekly_completed = (row.weekly_completed or 0) + 1
	db.commit()
	return row
