from __future__ import annotations
import re
from typing import List, Optional

from .errors import QualityGateError

DEFAULT_MIN_WORDS = 10
# At least this share of words must contain a vowel (y included)
MIN_VOWEL_WORD_RATIO = 0.4

_VOWEL_RE = re.compile(r"[aeiouy]", re.IGNORECASE)


def tokenize(text: Optional[str]) -> List[str]:
	return (text or "").split()


def count_words(text: Optional[str]) -> int:
	return len(tokenize(text))


def vowel_word_ratio(words: List[str]) -> float:
	if not words:
		return 0.0
	return sum(1 for w in words if _VOWEL_RE.search(w)) / len(words)


def check_submission(text: str, min_words: int = DEFAULT_MIN_WORDS) -> int:
	"""Reject writing that is too short or looks like keyboard mashing.

	Returns the word count when the text passes. Raises QualityGateError with
	code ``too_short`` (carrying the observed word count) or ``gibberish``.
	The too_short check always runs first.
	"""
	words = tokenize(text)
	word_count = len(words)
	if word_count < min_words:
		raise QualityGateError(
			"too_short",
			f"Your writing needs at least {min_words} words to be scored. "
			f"You have {word_count} so far. Keep going, you've got this!",
			word_count=word_count,
			min_words=min_words,
		)
	if vowel_word_ratio(words) < MIN_VOWEL_WORD_RATIO:
		raise QualityGateError(
			"gibberish",
			"Hmm, that doesn't look like real writing yet. Try writing real sentences about the topic. You can do it!",
			word_count=word_count,
		)
	return word_count
