"""Tests for skill mapping, level bands and the rolling average."""

from __future__ import annotations

import pytest

from backend.app.models import SkillProgress
from backend.app.skills import lesson_skills, quantize_level, rolling_average, update_skill_progress


class TestLevels:
	@pytest.mark.parametrize(
		"score, level",
		[
			(0.0, "EMERGING"),
			(1.79, "EMERGING"),
			(1.8, "DEVELOPING"),
			(2.79, "DEVELOPING"),
			(2.8, "PROFICIENT"),
			(3.69, "PROFICIENT"),
			(3.7, "ADVANCED"),
			(4.0, "ADVANCED"),
		],
	)
	def test_band_boundaries(self, score: float, level: str) -> None:
		assert quantize_level(score) == level


class TestRollingAverage:
	def test_first_score_taken_as_is(self) -> None:
		assert rolling_average(2.5, None) == 2.5

	def test_weighted_update(self) -> None:
		assert rolling_average(5.0, 1.0) == pytest.approx(3.8)


class TestLessonSkills:
	def test_maps_type_and_unit(self) -> None:
		assert lesson_skills("N1.2.5") == ("narrative", ["plot_pacing", "character_development"])
		assert lesson_skills("D1.1.1") == ("descriptive", ["sensory_detail", "imagery"])

	def test_unknown_unit_falls_back_to_first_skill(self) -> None:
		assert lesson_skills("P2.9.1") == ("persuasive", ["argument_structure"])


class TestUpdateSkillProgress:
	def test_creates_then_averages(self, db_session, child) -> None:
		rows = update_skill_progress(db_session, child.id, "N1.1.5", 1.0)
		assert {r.skill_name for r in rows} == {"story_structure", "setting_description"}
		assert all(r.score == 1.0 and r.total_attempts == 1 and r.level == "EMERGING" for r in rows)

		update_skill_progress(db_session, child.id, "N1.1.2", 3.5)
		row = (
			db_session.query(SkillProgress)
			.filter_by(child_id=child.id, skill_category="narrative", skill_name="story_structure")
			.one()
		)
		assert row.score == pytest.approx(0.7 * 3.5 + 0.3 * 1.0)
		assert row.total_attempts == 2
		assert row.level == "DEVELOPING"
		assert db_session.query(SkillProgress).filter_by(child_id=child.id).count() == 2
