from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import SkillProgress

logger = logging.getLogger(__name__)


# Weight of the newest score in the rolling average
NEW_SCORE_WEIGHT = 0.7

# Lower-inclusive band starts, highest first
LEVEL_BANDS: Tuple[Tuple[float, str], ...] = (
	(3.7, "ADVANCED"),
	(2.8, "PROFICIENT"),
	(1.8, "DEVELOPING"),
	(0.0, "EMERGING"),
)

SKILL_DEFINITIONS: Dict[str, Dict[str, str]] = {
	"narrative": {
		"story_structure": "Story Structure",
		"character_development": "Character Development",
		"setting_description": "Setting & Description",
		"voice_style": "Voice & Style",
		"plot_pacing": "Plot & Pacing",
	},
	"persuasive": {
		"argument_structure": "Argument Structure",
		"evidence_support": "Evidence & Support",
		"counterarguments": "Counterarguments",
		"persuasive_language": "Persuasive Language",
		"conclusion_impact": "Conclusion & Impact",
	},
	"expository": {
		"topic_clarity": "Topic Clarity",
		"organization": "Organization",
		"information_depth": "Information Depth",
		"transitions": "Transitions",
		"conclusion": "Conclusion",
	},
	"descriptive": {
		"sensory_detail": "Sensory Detail",
		"figurative_language": "Figurative Language",
		"word_choice": "Word Choice",
		"imagery": "Imagery",
		"mood_atmosphere": "Mood & Atmosphere",
	},
}

CATEGORY_BY_TYPE_LETTER = {"N": "narrative", "P": "persuasive", "E": "expository", "D": "descriptive"}

SKILLS_BY_UNIT: Dict[str, Dict[int, List[str]]] = {
	"narrative": {
		1: ["story_structure", "setting_description"],
		2: ["plot_pacing", "character_development"],
		3: ["voice_style", "story_structure"],
		4: ["character_development", "plot_pacing"],
	},
	"persuasive": {
		1: ["argument_structure", "persuasive_language"],
		2: ["evidence_support", "counterarguments"],
		3: ["conclusion_impact", "persuasive_language"],
		4: ["argument_structure", "evidence_support"],
	},
	"expository": {
		1: ["topic_clarity", "organization"],
		2: ["information_depth", "transitions"],
		3: ["conclusion", "organization"],
		4: ["topic_clarity", "information_depth"],
	},
	"descriptive": {
		1: ["sensory_detail", "imagery"],
		2: ["figurative_language", "word_choice"],
		3: ["mood_atmosphere", "sensory_detail"],
		4: ["word_choice", "imagery"],
	},
}


def lesson_skills(lesson_id: str) -> Tuple[str, List[str]]:
	"""Map a lesson id like ``N1.2.5`` to (category, skills it develops)."""
	category = CATEGORY_BY_TYPE_LETTER.get(lesson_id[:1].upper(), "narrative")
	parts = lesson_id.split(".")
	try:
		unit = int(parts[1])
	except (IndexError, ValueError):
		unit = 1
	skills = SKILLS_BY_UNIT[category].get(unit)
	if not skills:
		skills = [next(iter(SKILL_DEFINITIONS[category]))]
	return category, list(skills)


def quantize_level(score: float) -> str:
	for lower, level in LEVEL_BANDS:
		if score >= lower:
			return level
	return "EMERGING"


def rolling_average(new_score: float, old_score: Optional[float]) -> float:
	if old_score is None:
		return new_score
	return NEW_SCORE_WEIGHT * new_score + (1 - NEW_SCORE_WEIGHT) * old_score


def _clamp(score: float) -> float:
	return min(4.0, max(1.0, score))


def update_skill_progress(db: Session, child_id: str, lesson_id: str, overall_score: float, *, now: Optional[datetime] = None) -> List[SkillProgress]:
	"""Fold one overall score into every skill the lesson develops. Commits."""
	now = now or datetime.utcnow()
	category, skills = lesson_skills(lesson_id)
	rows: List[SkillProgress] = []
	for skill_name in skills:
		row = (
			db.query(SkillProgress)
			.filter(
				SkillProgress.child_id == child_id,
				SkillProgress.skill_category == category,
				SkillProgress.skill_name == skill_name,
			)
			.first()
		)
		if row is None:
			score = _clamp(overall_score)
			row = SkillProgress(
				child_id=child_id,
				skill_category=category,
				skill_name=skill_name,
				score=score,
				level=quantize_level(score),
				total_attempts=1,
				last_assessed_at=now,
			)
			db.add(row)
		else:
			row.score = _clamp(rolling_average(overall_score, row.score))
			row.level = quantize_level(row.score)
			row.total_attempts = (row.total_attempts or 0) + 1
			row.last_assessed_at = now
		rows.append(row)
	db.commit()
	logger.debug("Skill progress for %s/%s: %s", child_id, category, [(r.skill_name, round(r.score, 2)) for r in rows])
	return rows
