"""Tests for badge predicates and idempotent unlocking."""

from __future__ import annotations

from datetime import datetime

from backend.app import badges as badges_module
from backend.app.badges import BADGE_CATALOG, BadgeFacts, check_and_unlock_badges, evaluate_badges
from backend.app.models import Achievement, LessonProgress, WritingSubmission


def _facts(**overrides) -> BadgeFacts:
	values = dict(
		completed_lesson_ids=[],
		completion_times=[],
		word_counts=[],
		revision_numbers=[],
		overall_scores=[],
		skills=[],
	)
	values.update(overrides)
	return BadgeFacts(**values)


def _complete(db_session, child_id: str, lesson_id: str, when: datetime) -> None:
	db_session.add(LessonProgress(child_id=child_id, lesson_id=lesson_id, status="completed", current_phase="feedback", completed_at=when))
	db_session.commit()


class TestCatalog:
	def test_has_every_badge_once(self) -> None:
		ids = [b.id for b in BADGE_CATALOG]
		assert len(ids) == 23
		assert len(set(ids)) == 23
		assert set(ids) == set(badges_module.BADGE_PREDICATES)


class TestPredicates:
	def test_nothing_for_empty_history(self) -> None:
		assert evaluate_badges(_facts(), set()) == []

	def test_lesson_and_type_badges(self) -> None:
		facts = _facts(completed_lesson_ids=["N1.1.1", "P1.1.1", "E1.1.1", "D1.1.1", "N1.1.2"])
		earned = evaluate_badges(facts, set())
		assert {"first_lesson", "five_lessons", "all_narrative", "all_persuasive", "all_expository", "all_descriptive"} <= set(earned)
		assert "ten_lessons" not in earned

	def test_score_badges(self) -> None:
		earned = evaluate_badges(_facts(overall_scores=[3.5, 3.6, 4.0]), set())
		assert "perfect_score" in earned
		assert "high_achiever" in earned
		assert "high_achiever" not in evaluate_badges(_facts(overall_scores=[3.5, 3.4, 4.0]), set())

	def test_streak_uses_best_of_current_and_longest(self) -> None:
		earned = evaluate_badges(_facts(current_streak=1, longest_streak=7), set())
		assert {"streak_3", "streak_7"} <= set(earned)
		assert "streak_14" not in earned

	def test_skill_badges(self) -> None:
		skills = [
			("narrative", "ADVANCED", 3.8),
			("persuasive", "DEVELOPING", 2.0),
			("expository", "DEVELOPING", 2.2),
			("descriptive", "EMERGING", 1.9),
		]
		earned = evaluate_badges(_facts(skills=skills), set())
		assert {"first_proficient", "first_advanced"} <= set(earned)
		assert "well_rounded" not in earned

	def test_time_of_day_badges(self) -> None:
		facts = _facts(completion_times=[datetime(2026, 3, 2, 8, 59), datetime(2026, 3, 2, 20, 0)])
		assert {"early_bird", "night_owl"} <= set(evaluate_badges(facts, set()))

	def test_held_badges_skipped(self) -> None:
		facts = _facts(completed_lesson_ids=["N1.1.1"])
		assert "first_lesson" not in evaluate_badges(facts, {"first_lesson"})

	def test_failing_predicate_does_not_block_others(self, monkeypatch) -> None:
		def _boom(facts):
			raise RuntimeError("broken predicate")

		monkeypatch.setitem(badges_module.BADGE_PREDICATES, "five_lessons", _boom)
		earned = evaluate_badges(_facts(completed_lesson_ids=["N1.1.1"] * 5), set())
		assert "first_lesson" in earned
		assert "five_lessons" not in earned


class TestUnlock:
	def test_unlocks_once(self, db_session, child) -> None:
		_complete(db_session, child.id, "N1.1.4", datetime(2026, 3, 2, 12, 0))
		first = check_and_unlock_badges(db_session, child.id)
		assert "first_lesson" in first
		assert "all_narrative" in first

		assert check_and_unlock_badges(db_session, child.id) == []
		rows = db_session.query(Achievement).filter_by(child_id=child.id, badge_id="first_lesson").all()
		assert len(rows) == 1
		assert rows[0].seen is False

	def test_revision_and_word_count_badges(self, db_session, child) -> None:
		db_session.add_all([
			WritingSubmission(session_id="s1", child_id=child.id, text="x", word_count=120, revision_number=0),
			WritingSubmission(session_id="s1", child_id=child.id, text="y", word_count=130, revision_number=1),
		])
		db_session.commit()
		earned = check_and_unlock_badges(db_session, child.id)
		assert {"first_revision", "wordsmith_100"} <= set(earned)
		assert "wordsmith_250" not in earned
