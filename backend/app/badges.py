"""Achievement badges.

``check_and_unlock_badges`` reads everything it needs up front, evaluates
each badge predicate on its own (one failing predicate is logged and skipped)
and inserts every newly earned badge in a single commit. Badges the child
already holds are never evaluated or inserted again.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Session

from .models import Achievement, Assessment, LessonProgress, SkillProgress, Streak, WritingSubmission

logger = logging.getLogger(__name__)


class BadgeDefinition(BaseModel):
	id: str
	name: str
	emoji: str
	description: str
	category: str  # writing | progress | streak | skill | special


BADGE_CATALOG: Tuple[BadgeDefinition, ...] = (
	BadgeDefinition(id="first_lesson", name="Story Starter", emoji="\U0001F4DD", description="Complete your first lesson", category="writing"),
	BadgeDefinition(id="five_lessons", name="Bookworm", emoji="\U0001F4DA", description="Complete 5 lessons", category="writing"),
	BadgeDefinition(id="ten_lessons", name="Writing Champion", emoji="\U0001F3C6", description="Complete 10 lessons", category="writing"),
	BadgeDefinition(id="twenty_lessons", name="Master Writer", emoji="\u270D\uFE0F", description="Complete 20 lessons", category="writing"),
	BadgeDefinition(id="first_revision", name="Editor in Chief", emoji="\u270F\uFE0F", description="Revise a piece of writing", category="writing"),
	BadgeDefinition(id="wordsmith_100", name="Wordsmith", emoji="\U0001F4AC", description="Write 100+ words in one submission", category="writing"),
	BadgeDefinition(id="wordsmith_250", name="Word Wizard", emoji="\U0001FA84", description="Write 250+ words in one submission", category="writing"),
	BadgeDefinition(id="wordsmith_500", name="Novel Author", emoji="\U0001F4D6", description="Write 500+ words in one submission", category="writing"),
	BadgeDefinition(id="perfect_score", name="Perfect Score", emoji="\u2B50", description="Score 4/4 on an assessment", category="progress"),
	BadgeDefinition(id="high_achiever", name="High Achiever", emoji="\U0001F31F", description="Score 3.5+ three times", category="progress"),
	BadgeDefinition(id="all_narrative", name="Story Teller", emoji="\U0001F4D5", description="Complete a narrative lesson", category="progress"),
	BadgeDefinition(id="all_persuasive", name="Debate Star", emoji="\U0001F3A4", description="Complete a persuasive lesson", category="progress"),
	BadgeDefinition(id="all_expository", name="Knowledge Sharer", emoji="\U0001F52C", description="Complete an expository lesson", category="progress"),
	BadgeDefinition(id="all_descriptive", name="Word Painter", emoji="\U0001F3A8", description="Complete a descriptive lesson", category="progress"),
	BadgeDefinition(id="streak_3", name="On a Roll", emoji="\U0001F525", description="3-day writing streak", category="streak"),
	BadgeDefinition(id="streak_7", name="Week Warrior", emoji="\U0001F4AA", description="7-day writing streak", category="streak"),
	BadgeDefinition(id="streak_14", name="Unstoppable", emoji="\U0001F680", description="14-day writing streak", category="streak"),
	BadgeDefinition(id="weekly_goal", name="Goal Getter", emoji="\U0001F3AF", description="Meet weekly lesson goal", category="streak"),
	BadgeDefinition(id="first_proficient", name="Skill Master", emoji="\U0001F9E0", description="Reach PROFICIENT in any skill", category="skill"),
	BadgeDefinition(id="first_advanced", name="Writing Genius", emoji="\U0001F393", description="Reach ADVANCED in any skill", category="skill"),
	BadgeDefinition(id="well_rounded", name="Well Rounded", emoji="\U0001F308", description="Score 2.0+ in all 4 writing categories", category="skill"),
	BadgeDefinition(id="early_bird", name="Early Bird", emoji="\U0001F305", description="Complete a lesson before 9 AM", category="special"),
	BadgeDefinition(id="night_owl", name="Night Owl", emoji="\U0001F989", description="Complete a lesson after 8 PM", category="special"),
)

BADGES_BY_ID: Dict[str, BadgeDefinition] = {b.id: b for b in BADGE_CATALOG}


def get_badge(badge_id: str) -> Optional[BadgeDefinition]:
	return BADGES_BY_ID.get(badge_id)


@dataclass
class BadgeFacts:
	"""Snapshot of a child's progress that badge predicates are evaluated on."""

	completed_lesson_ids: List[str]
	completion_times: List[datetime]
	word_counts: List[int]
	revision_numbers: List[int]
	overall_scores: List[float]
	skills: List[Tuple[str, str, float]]  # (category, level, score)
	current_streak: int = 0
	longest_streak: int = 0
	weekly_completed: int = 0
	weekly_goal: Optional[int] = None

	@property
	def completed_count(self) -> int:
		return len(self.completed_lesson_ids)

	@property
	def max_word_count(self) -> int:
		return max(self.word_counts, default=0)

	@property
	def best_streak(self) -> int:
		return max(self.current_streak, self.longest_streak)

	def completed_type(self, letter: str) -> bool:
		return any(lid.startswith(letter) for lid in self.completed_lesson_ids)

	def best_category_score(self, category: str) -> float:
		return max((score for cat, _, score in self.skills if cat == category), default=0.0)


def _has_level(facts: BadgeFacts, *levels: str) -> bool:
	return any(level in levels for _, level, _ in facts.skills)


BADGE_PREDICATES: Dict[str, Callable[[BadgeFacts], bool]] = {
	"first_lesson": lambda f: f.completed_count >= 1,
	"five_lessons": lambda f: f.completed_count >= 5,
	"ten_lessons": lambda f: f.completed_count >= 10,
	"twenty_lessons": lambda f: f.completed_count >= 20,
	"first_revision": lambda f: any(n > 0 for n in f.revision_numbers),
	"wordsmith_100": lambda f: f.max_word_count >= 100,
	"wordsmith_250": lambda f: f.max_word_count >= 250,
	"wordsmith_500": lambda f: f.max_word_count >= 500,
	"perfect_score": lambda f: any(s >= 4.0 for s in f.overall_scores),
	"high_achiever": lambda f: sum(1 for s in f.overall_scores if s >= 3.5) >= 3,
	"all_narrative": lambda f: f.completed_type("N"),
	"all_persuasive": lambda f: f.completed_type("P"),
	"all_expository": lambda f: f.completed_type("E"),
	"all_descriptive": lambda f: f.completed_type("D"),
	"streak_3": lambda f: f.best_streak >= 3,
	"streak_7": lambda f: f.best_streak >= 7,
	"streak_14": lambda f: f.best_streak >= 14,
	"weekly_goal": lambda f: f.weekly_goal is not None and f.weekly_completed >= f.weekly_goal,
	"first_proficient": lambda f: _has_level(f, "PROFICIENT", "ADVANCED"),
	"first_advanced": lambda f: _has_level(f, "ADVANCED"),
	"well_rounded": lambda f: all(
		f.best_category_score(cat) >= 2.0 for cat in ("narrative", "persuasive", "expository", "descriptive")
	),
	"early_bird": lambda f: any(t.hour < 9 for t in f.completion_times),
	"night_owl": lambda f: any(t.hour >= 20 for t in f.completion_times),
}


def load_badge_facts(db: Session, child_id: str) -> BadgeFacts:
	completed = (
		db.query(LessonProgress.lesson_id, LessonProgress.completed_at)
		.filter(LessonProgress.child_id == child_id, LessonProgress.status == "completed")
		.all()
	)
	submissions = (
		db.query(WritingSubmission.word_count, WritingSubmission.revision_number)
		.filter(WritingSubmission.child_id == child_id)
		.all()
	)
	scores = db.query(Assessment.overall_score).filter(Assessment.child_id == child_id).all()
	skills = (
		db.query(SkillProgress.skill_category, SkillProgress.level, SkillProgress.score)
		.filter(SkillProgress.child_id == child_id)
		.all()
	)
	streak = db.get(Streak, child_id)
	return BadgeFacts(
		completed_lesson_ids=[row.lesson_id for row in completed],
		completion_times=[row.completed_at for row in completed if row.completed_at is not None],
		word_counts=[row.word_count for row in submissions],
		revision_numbers=[row.revision_number for row in submissions],
		overall_scores=[row.overall_score for row in scores],
		skills=[(row.skill_category, row.level, row.score) for row in skills],
		current_streak=streak.current_streak if streak else 0,
		longest_streak=streak.longest_streak if streak else 0,
		weekly_completed=streak.weekly_completed if streak else 0,
		weekly_goal=streak.weekly_goal if streak else None,
	)


def evaluate_badges(facts: BadgeFacts, held: set[str]) -> List[str]:
	earned: List[str] = []
	for badge in BADGE_CATALOG:
		if badge.id in held:
			continue
		predicate = BADGE_PREDICATES.get(badge.id)
		if predicate is None:
			continue
		try:
			if predicate(facts):
				earned.append(badge.id)
		except Exception:
			logger.exception("Badge check failed for %s", badge.id)
	return earned


def check_and_unlock_badges(db: Session, child_id: str, *, now: Optional[datetime] = None) -> List[str]:
	"""Unlock every badge the child now qualifies for; return the new badge ids."""
	held = {row.badge_id for row in db.query(Achievement.badge_id).filter(Achievement.child_id == child_id).all()}
	facts = load_badge_facts(db, child_id)
	new_ids = evaluate_badges(facts, held)
	if not new_ids:
		return []
	unlocked_at = now or datetime.utcnow()
	db.add_all([Achievement(child_id=child_id, badge_id=badge_id, unlocked_at=unlocked_at, seen=False) for badge_id in new_ids])
	db.commit()
	logger.info("Unlocked badges for %s: %s", child_id, ", ".join(new_ids))
	return new_ids
