"""Bracketed directives embedded in coach replies.

The coach model annotates its free-text replies with control tokens such as
``[PHASE_TRANSITION: guided]`` or ``[OPTIONS: "A" | "B"]``. Each directive type
has its own extractor; extractors are independent of each other and of the
order directives appear in, and a missing or malformed directive simply means
"no signal". Nothing in this module raises on bad input.

``strip_phase_markers`` removes every directive the orchestration layer
consumes, but leaves ``UI_MARKERS`` in place because the presentation layer
parses them from the same text later.
"""
from __future__ import annotations
import logging
import re
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


ANSWER_TYPES = ("choice", "multiselect", "poll", "order", "highlight")

# Directives left in the displayed text for the UI to render.
UI_MARKERS: Tuple[str, ...] = ("STEP", "GUIDED_STAGE", "WRITING_PROMPT", "EXPECTS_RESPONSE")


class WritingSampleMarker(BaseModel):
	type: str
	criterion: str
	excerpt: str


class PreferenceMarker(BaseModel):
	category: str
	value: str


class CoachMarkers(BaseModel):
	step: Optional[int] = None
	guided_stage: Optional[int] = None
	phase_transition: Optional[str] = None
	comprehension_check: Optional[str] = None  # "passed" | "failed"
	hint_given: bool = False
	answer_type: Optional[str] = None
	options: Optional[List[str]] = None
	passage: Optional[str] = None
	answer_prompt: Optional[str] = None
	scores: Optional[Dict[str, float]] = None
	samples: List[WritingSampleMarker] = Field(default_factory=list)
	preferences: List[PreferenceMarker] = Field(default_factory=list)

	@property
	def comprehension_passed(self) -> bool:
		return self.comprehension_check == "passed"

	def detected(self) -> Dict[str, object]:
		"""Non-empty signals only, for logging."""
		return self.model_dump(exclude_defaults=True)


_STEP_RE = re.compile(r"\[STEP:\s*(\d+)\s*\]", re.IGNORECASE)
_GUIDED_STAGE_RE = re.compile(r"\[GUIDED_STAGE:\s*(\d+)\s*\]", re.IGNORECASE)
_PHASE_TRANSITION_RE = re.compile(r"\[PHASE_TRANSITION:\s*(guided|assessment)\s*\]", re.IGNORECASE)
_COMPREHENSION_RE = re.compile(r"\[COMPREHENSION_CHECK:\s*(passed|failed)\s*\]", re.IGNORECASE)
_COMPREHENSION_PASSED_RE = re.compile(r"\[COMPREHENSION_CHECK_PASSED\]", re.IGNORECASE)
_HINT_RE = re.compile(r"\[HINT_GIVEN\]", re.IGNORECASE)
_ANSWER_TYPE_RE = re.compile(r"\[ANSWER_TYPE:\s*(" + "|".join(ANSWER_TYPES) + r")\s*\]", re.IGNORECASE)
_OPTIONS_RE = re.compile(r"\[OPTIONS:\s*(.+?)\]", re.IGNORECASE)
_PASSAGE_RE = re.compile(r"\[PASSAGE:\s*\"([\s\S]+?)\"\]", re.IGNORECASE)
_ANSWER_PROMPT_RE = re.compile(r"\[ANSWER_PROMPT:\s*\"([\s\S]+?)\"\]", re.IGNORECASE)
_SCORES_RE = re.compile(r"\[SCORES\]([\s\S]*?)\[/SCORES\]", re.IGNORECASE)
_SAMPLE_RE = re.compile(r"\[SAMPLE:\s*([^|\]]+?)\s*\|\s*([^\]]+?)\s*\]([\s\S]*?)\[/SAMPLE\]", re.IGNORECASE)
_PREFERENCE_RE = re.compile(r"\[PREFERENCE:\s*([^|\]]+?)\s*\|\s*([^\]]+?)\s*\]", re.IGNORECASE)


def _first_int(pattern: re.Pattern, text: str) -> Optional[int]:
	match = pattern.search(text)
	return int(match.group(1)) if match else None


def extract_step(text: str) -> Optional[int]:
	return _first_int(_STEP_RE, text)


def extract_guided_stage(text: str) -> Optional[int]:
	return _first_int(_GUIDED_STAGE_RE, text)


def extract_phase_transition(text: str) -> Optional[str]:
	match = _PHASE_TRANSITION_RE.search(text)
	return match.group(1).lower() if match else None


def extract_comprehension_check(text: str) -> Optional[str]:
	if _COMPREHENSION_PASSED_RE.search(text):
		return "passed"
	match = _COMPREHENSION_RE.search(text)
	return match.group(1).lower() if match else None


def extract_hint_given(text: str) -> bool:
	return bool(_HINT_RE.search(text))


def extract_answer_type(text: str) -> Optional[str]:
	match = _ANSWER_TYPE_RE.search(text)
	return match.group(1).lower() if match else None


def _unquote(value: str) -> str:
	value = value.strip()
	if value.startswith('"'):
		value = value[1:]
	if value.endswith('"'):
		value = value[:-1]
	return value


def extract_options(text: str) -> Optional[List[str]]:
	match = _OPTIONS_RE.search(text)
	if not match:
		return None
	return [_unquote(part) for part in match.group(1).split("|")]


def extract_passage(text: str) -> Optional[str]:
	match = _PASSAGE_RE.search(text)
	return match.group(1) if match else None


def extract_answer_prompt(text: str) -> Optional[str]:
	match = _ANSWER_PROMPT_RE.search(text)
	return match.group(1) if match else None


def extract_scores(text: str) -> Optional[Dict[str, float]]:
	"""Parse ``[SCORES]name:value,...[/SCORES]``.

	Pairs with an empty name or a non-numeric value are dropped. Returns None
	when the block is absent or yields no usable pair.
	"""
	match = _SCORES_RE.search(text)
	if not match:
		return None
	scores: Dict[str, float] = {}
	for pair in match.group(1).split(","):
		name, sep, raw_value = pair.partition(":")
		name = name.strip()
		if not sep or not name:
			continue
		try:
			scores[name] = float(raw_value.strip())
		except ValueError:
			continue
	return scores or None


def extract_samples(text: str) -> List[WritingSampleMarker]:
	samples: List[WritingSampleMarker] = []
	for match in _SAMPLE_RE.finditer(text):
		excerpt = match.group(3).strip()
		if not excerpt:
			continue
		samples.append(WritingSampleMarker(type=match.group(1).strip(), criterion=match.group(2).strip(), excerpt=excerpt))
	return samples


def extract_preferences(text: str) -> List[PreferenceMarker]:
	return [
		PreferenceMarker(category=m.group(1).strip(), value=m.group(2).strip())
		for m in _PREFERENCE_RE.finditer(text)
	]


# field name on CoachMarkers -> extractor
EXTRACTORS: Dict[str, Callable[[str], object]] = {
	"step": extract_step,
	"guided_stage": extract_guided_stage,
	"phase_transition": extract_phase_transition,
	"comprehension_check": extract_comprehension_check,
	"hint_given": extract_hint_given,
	"answer_type": extract_answer_type,
	"options": extract_options,
	"passage": extract_passage,
	"answer_prompt": extract_answer_prompt,
	"scores": extract_scores,
	"samples": extract_samples,
	"preferences": extract_preferences,
}


def extract_markers(text: Optional[str]) -> CoachMarkers:
	values: Dict[str, object] = {}
	if not text:
		return CoachMarkers()
	for field, extractor in EXTRACTORS.items():
		try:
			value = extractor(text)
		except Exception:
			logger.warning("Marker extractor %s failed; treating as absent", field, exc_info=True)
			continue
		if value is not None:
			values[field] = value
	return CoachMarkers(**values)


# Directives consumed by the backend; each pattern also eats trailing whitespace.
_STRIP_PATTERNS: Tuple[re.Pattern, ...] = (
	re.compile(r"\[PHASE_TRANSITION:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[COMPREHENSION_CHECK:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[COMPREHENSION_CHECK_PASSED\]\s*", re.IGNORECASE),
	re.compile(r"\[HINT_GIVEN\]\s*", re.IGNORECASE),
	re.compile(r"\[ANSWER_TYPE:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[OPTIONS:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[PASSAGE:\s*\"[\s\S]*?\"\]\s*", re.IGNORECASE),
	re.compile(r"\[PASSAGE:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[ANSWER_PROMPT:\s*\"[\s\S]*?\"\]\s*", re.IGNORECASE),
	re.compile(r"\[ANSWER_PROMPT:[^\]]*\]\s*", re.IGNORECASE),
	re.compile(r"\[SCORES\][\s\S]*?\[/SCORES\]\s*", re.IGNORECASE),
	re.compile(r"\[/?SCORES\]\s*", re.IGNORECASE),
	re.compile(r"\[SAMPLE:[^\]]*\][\s\S]*?\[/SAMPLE\]\s*", re.IGNORECASE),
	re.compile(r"\[SAMPLE:[^\]]*\]\s*|\[/SAMPLE\]\s*", re.IGNORECASE),
	re.compile(r"\[PREFERENCE:[^\]]*\]\s*", re.IGNORECASE),
)


def strip_phase_markers(text: str) -> str:
	"""Remove backend-only directives from text shown to the student.

	Idempotent, and returns the input untouched when it has no backend
	directive. ``UI_MARKERS`` are never removed.
	"""
	if not text:
		return text
	current = text
	removed = False
	while True:
		updated = current
		for pattern in _STRIP_PATTERNS:
			updated = pattern.sub("", updated)
		if updated == current:
			break
		removed = True
		current = updated
	return current.strip() if removed else text
