"""Rubric grading through the language model.

The model is asked for a JSON object; whatever comes back is normalised so
every rubric criterion has a score in {1, 1.5, ..., 4} and the overall score
is in [1, 4] with one decimal. A reply that cannot be parsed at all yields a
neutral default assessment instead of an error.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel

from .catalog import Lesson, Rubric
from .prompts import build_grading_prompt

logger = logging.getLogger(__name__)


GENERAL_RUBRIC_ID = "general"
GENERAL_CRITERIA: Tuple[str, ...] = ("creativity", "effort", "skill_practice")

DEFAULT_FEEDBACK = {
	"strength": "Great effort on this writing piece!",
	"growth": "Keep practicing and try adding more details next time.",
	"encouragement": "You're becoming a stronger writer every day!",
}
FALLBACK_FEEDBACK = {
	"strength": "You put real effort into this writing piece!",
	"growth": "Keep practicing the skills from this lesson.",
	"encouragement": "Every time you write, you get a little bit better!",
}
FALLBACK_SCORE = 2.0


class TextModel(Protocol):
	async def generate(self, prompt: str) -> str: ...


class Feedback(BaseModel):
	strength: str
	growth: str
	encouragement: str


class GradingResult(BaseModel):
	rubric_id: str
	scores: Dict[str, float]
	overall_score: float
	feedback: Feedback


def _extract_json_object(text: str) -> Optional[Dict[str, Any]]:
	candidates = [text]
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		candidates.append(code_block.group(1))
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		candidates.append(text[first : last + 1])
	for candidate in candidates:
		try:
			data = json.loads(candidate)
		except (TypeError, ValueError):
			continue
		if isinstance(data, dict):
			return data
	return None


def normalize_score(value: Any) -> Optional[float]:
	"""Clamp to [1, 4] and snap to the nearest half point; None if not a number."""
	if isinstance(value, bool):
		return None
	try:
		number = float(value)
	except (TypeError, ValueError):
		return None
	if number != number:  # NaN
		return None
	number = min(4.0, max(1.0, number))
	return round(number * 2) / 2


def _criteria_weights(rubric: Optional[Rubric]) -> List[Tuple[str, float]]:
	if rubric is None or not rubric.criteria:
		weight = 1.0 / len(GENERAL_CRITERIA)
		return [(name, weight) for name in GENERAL_CRITERIA]
	return [(c.name, c.weight) for c in rubric.criteria]


def weighted_overall(scores: Dict[str, float], weights: List[Tuple[str, float]]) -> float:
	total_weight = sum(w for _, w in weights) or 1.0
	value = sum(scores[name] * w for name, w in weights) / total_weight
	return round(min(4.0, max(1.0, value)), 1)


def parse_grading_reply(raw: str, rubric: Optional[Rubric]) -> GradingResult:
	weights = _criteria_weights(rubric)
	rubric_id = rubric.id if rubric is not None else GENERAL_RUBRIC_ID
	data = _extract_json_object(raw or "")
	if data is None:
		logger.warning("Grading reply was not JSON; using default assessment")
		return GradingResult(
			rubric_id=rubric_id,
			scores={name: FALLBACK_SCORE for name, _ in weights},
			overall_score=FALLBACK_SCORE,
			feedback=Feedback(**FALLBACK_FEEDBACK),
		)

	raw_scores = data.get("scores") if isinstance(data.get("scores"), dict) else {}
	scores: Dict[str, float] = {}
	for name, _ in weights:
		score = normalize_score(raw_scores.get(name))
		scores[name] = score if score is not None else FALLBACK_SCORE

	overall: Optional[float] = None
	for key in ("overall", "overallScore", "overall_score"):
		if key not in data or isinstance(data[key], bool):
			continue
		try:
			candidate = float(data[key])
		except (TypeError, ValueError):
			continue
		if 1.0 <= candidate <= 4.0:
			overall = round(candidate, 1)
		break
	if overall is None:
		overall = weighted_overall(scores, weights)

	raw_feedback = data.get("feedback") if isinstance(data.get("feedback"), dict) else {}
	feedback = {
		key: str(raw_feedback.get(key) or "").strip() or default
		for key, default in DEFAULT_FEEDBACK.items()
	}
	return GradingResult(rubric_id=rubric_id, scores=scores, overall_score=overall, feedback=Feedback(**feedback))


async def grade_writing(model: TextModel, text: str, lesson: Lesson, rubric: Optional[Rubric], tier: int) -> GradingResult:
	"""Grade one submission. Model failures propagate as UpstreamModelError."""
	criteria = [name for name, _ in _criteria_weights(rubric)]
	prompt = build_grading_prompt(text, lesson, rubric, criteria, tier)
	raw = await model.generate(prompt)
	result = parse_grading_reply(raw, rubric)
	logger.info("Graded %s (%s): overall=%.1f", lesson.id, result.rubric_id, result.overall_score)
	return result
