"""Read-only lesson and rubric catalog.

Loaded once from the JSON files in ``settings.content_dir`` and handed to
request handlers through ``get_catalog``. The catalog is immutable: models are
frozen and the indexes are read-only mappings.
"""
from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .quality_gate import DEFAULT_MIN_WORDS
from .settings import settings

logger = logging.getLogger(__name__)


WRITING_TYPES: Tuple[str, ...] = ("narrative", "persuasive", "expository", "descriptive")


class RubricCriterion(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: str
	display_name: str
	weight: float
	levels: Dict[str, str] = Field(default_factory=dict)


class Rubric(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	description: str
	word_range: Tuple[int, int]
	criteria: Tuple[RubricCriterion, ...]


class Lesson(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	title: str
	unit: str
	type: str
	tier: int
	learning_objectives: Tuple[str, ...] = ()
	rubric_id: Optional[str] = None
	min_words: Optional[int] = None

	@property
	def unit_number(self) -> int:
		# N1.2.5 -> 2
		parts = self.id.split(".")
		try:
			return int(parts[1])
		except (IndexError, ValueError):
			return 0


class Catalog:
	def __init__(self, lessons: List[Lesson], rubrics: List[Rubric]) -> None:
		self._order: Tuple[str, ...] = tuple(lesson.id for lesson in lessons)
		self.lessons: Mapping[str, Lesson] = MappingProxyType({lesson.id: lesson for lesson in lessons})
		self.rubrics: Mapping[str, Rubric] = MappingProxyType({rubric.id: rubric for rubric in rubrics})

	def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
		return self.lessons.get(lesson_id)

	def get_rubric(self, rubric_id: Optional[str]) -> Optional[Rubric]:
		if not rubric_id:
			return None
		return self.rubrics.get(rubric_id)

	def lessons_for_tier(self, tier: int) -> List[Lesson]:
		return [self.lessons[lid] for lid in self._order if self.lessons[lid].tier == tier]

	def min_words_for(self, lesson: Lesson) -> int:
		"""Minimum word count the quality gate enforces for this lesson."""
		if lesson.min_words is not None:
			return lesson.min_words
		rubric = self.get_rubric(lesson.rubric_id)
		if rubric is not None:
			return max(DEFAULT_MIN_WORDS, rubric.word_range[0] // 2)
		return DEFAULT_MIN_WORDS


def format_rubric_for_prompt(rubric: Rubric) -> str:
	lines = [
		f"Rubric: {rubric.description}",
		f"Expected length: {rubric.word_range[0]}-{rubric.word_range[1]} words",
		"",
	]
	for criterion in rubric.criteria:
		lines.append(f"CRITERION {criterion.name}: {criterion.display_name} (weight: {round(criterion.weight * 100)}%)")
		for level in ("4", "3", "2", "1"):
			lines.append(f"  {level} - {criterion.levels.get(level, '')}")
		lines.append("")
	return "\n".join(lines)


def load_catalog(content_dir: Path) -> Catalog:
	content_dir = Path(content_dir)
	with open(content_dir / "lessons.json", encoding="utf-8") as fh:
		raw_lessons = json.load(fh).get("lessons", [])
	with open(content_dir / "rubrics.json", encoding="utf-8") as fh:
		raw_rubrics = json.load(fh).get("rubrics", [])
	lessons = [Lesson(**item) for item in raw_lessons]
	rubrics = [
		Rubric(
			id=item["rubric_id"],
			description=item.get("description", ""),
			word_range=tuple(item.get("word_range", (0, 0))),
			criteria=tuple(RubricCriterion(**c) for c in item.get("criteria", [])),
		)
		for item in raw_rubrics
	]
	catalog = Catalog(lessons, rubrics)
	missing = sorted({l.rubric_id for l in lessons if l.rubric_id and l.rubric_id not in catalog.rubrics})
	if missing:
		logger.warning("Lessons reference unknown rubrics: %s", ", ".join(missing))
	logger.info("Loaded catalog: %d lessons, %d rubrics from %s", len(lessons), len(rubrics), content_dir)
	return catalog


@lru_cache(maxsize=1)
def get_catalog() -> Catalog:
	return load_catalog(settings.content_dir)
