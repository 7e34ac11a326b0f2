"""Post-grading progress hooks.

Runs after a submission and its assessment are committed. Each hook is
independent: an exception in one is logged, its partial writes are rolled
back, and the remaining hooks still run. The grading response never depends
on a hook succeeding; a failed badge hook just means no new badges.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from .adaptation import check_curriculum_adaptation
from .badges import check_and_unlock_badges
from .catalog import Catalog
from .skills import update_skill_progress
from .streaks import update_streak

logger = logging.getLogger(__name__)


@dataclass
class GradingEvent:
	db: Session
	catalog: Catalog
	child_id: str
	lesson_id: str
	overall_score: float
	now: datetime = field(default_factory=datetime.utcnow)

	@property
	def today(self) -> date:
		return self.now.date()


@dataclass
class CascadeResult:
	new_badges: List[str] = field(default_factory=list)
	failed: List[str] = field(default_factory=list)


def _skills(event: GradingEvent) -> Any:
	return update_skill_progress(event.db, event.child_id, event.lesson_id, event.overall_score, now=event.now)


def _streak(event: GradingEvent) -> Any:
	return update_streak(event.db, event.child_id, today=event.today)


def _badges(event: GradingEvent) -> Any:
	return check_and_unlock_badges(event.db, event.child_id, now=event.now)


def _curriculum(event: GradingEvent) -> Any:
	return check_curriculum_adaptation(event.db, event.catalog, event.child_id)


# Badges run after skills and streak so they see this event's updates.
DEFAULT_HOOKS: Tuple[Tuple[str, Callable[[GradingEvent], Any]], ...] = (
	("skills", _skills),
	("streak", _streak),
	("badges", _badges),
	("curriculum", _curriculum),
)


def run_progress_cascade(event: GradingEvent, hooks: Optional[Tuple[Tuple[str, Callable[[GradingEvent], Any]], ...]] = None) -> CascadeResult:
	result = CascadeResult()
	for name, hook in hooks or DEFAULT_HOOKS:
		try:
			value = hook(event)
		except Exception:
			logger.exception("Progress hook %r failed for child %s (lesson %s)", name, event.child_id, event.lesson_id)
			event.db.rollback()
			result.failed.append(name)
			continue
		if name == "badges":
			result.new_badges = list(value or [])
	return result
