"""Tests for child profiles, badges, streaks and skills endpoints."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from backend.app.models import Achievement, SkillProgress, Streak


class TestChildren:
	def test_create_and_list_only_own(self, client, other_child) -> None:
		resp = client.post("/children", json={"name": "Leo", "tier": 2})
		assert resp.status_code == 201
		created = resp.json()
		assert created["name"] == "Leo"
		assert created["tier"] == 2
		listed = client.get("/children").json()
		assert [c["id"] for c in listed] == [created["id"]]

	@pytest.mark.parametrize("body", [{"name": "  "}, {"name": "Leo", "tier": 4}, {"tier": 2}])
	def test_invalid_child_is_400(self, client, body) -> None:
		resp = client.post("/children", json=body)
		assert resp.status_code == 400
		assert resp.json()["error"] == "validation_error"


class TestBadges:
	def test_list_and_mark_seen(self, client, db_session, child) -> None:
		db_session.add_all([
			Achievement(child_id=child.id, badge_id="first_lesson", unlocked_at=datetime(2026, 3, 2, 9, 0)),
			Achievement(child_id=child.id, badge_id="first_revision", unlocked_at=datetime(2026, 3, 3, 9, 0)),
		])
		db_session.commit()

		body = client.get(f"/children/{child.id}/badges").json()
		assert body["total"] == 2
		assert body["unseen"] == 2
		assert [b["id"] for b in body["badges"]] == ["first_revision", "first_lesson"]
		assert body["badges"][1]["name"]
		assert body["badges"][1]["unlockedAt"].startswith("2026-03-02")

		resp = client.post(f"/children/{child.id}/badges/seen", json={"badgeIds": ["first_lesson", "not_a_badge"]})
		assert resp.status_code == 200
		assert resp.json() == {"updated": 1}
		assert client.get(f"/children/{child.id}/badges").json()["unseen"] == 1
		# already seen rows are not counted again
		assert client.post(f"/children/{child.id}/badges/seen", json={"badgeIds": ["first_lesson"]}).json() == {"updated": 0}

	def test_empty_seen_list_is_400(self, client, child) -> None:
		resp = client.post(f"/children/{child.id}/badges/seen", json={"badgeIds": []})
		assert resp.status_code == 400

	def test_other_parents_child_is_404(self, client, other_child) -> None:
		assert client.get(f"/children/{other_child.id}/badges").status_code == 404
		assert client.get(f"/children/{other_child.id}/streak").status_code == 404
		assert client.get(f"/children/{other_child.id}/skills").status_code == 404


class TestStreak:
	def test_defaults_without_row(self, client, child) -> None:
		body = client.get(f"/children/{child.id}/streak").json()
		assert body == {
			"currentStreak": 0,
			"longestStreak": 0,
			"lastActiveDate": None,
			"weeklyGoal": 3,
			"weeklyCompleted": 0,
		}

	def test_existing_row(self, client, db_session, child) -> None:
		db_session.add(Streak(child_id=child.id, current_streak=4, longest_streak=9, last_active_date=date(2026, 3, 5), weekly_goal=5, weekly_completed=2))
		db_session.commit()
		body = client.get(f"/children/{child.id}/streak").json()
		assert body["currentStreak"] == 4
		assert body["longestStreak"] == 9
		assert body["lastActiveDate"] == "2026-03-05"

	def test_set_goal_creates_row(self, client, session_factory, child) -> None:
		resp = client.put(f"/children/{child.id}/streak/goal", json={"weeklyGoal": 5})
		assert resp.status_code == 200
		assert resp.json()["weeklyGoal"] == 5
		with session_factory() as s:
			assert s.get(Streak, child.id).weekly_goal == 5

	@pytest.mark.parametrize("goal", [0, 8, "3", True, 2.5, None])
	def test_invalid_goal_is_400(self, client, child, goal) -> None:
		resp = client.put(f"/children/{child.id}/streak/goal", json={"weeklyGoal": goal})
		assert resp.status_code == 400
		assert resp.json()["error"] == "validation_error"


class TestSkills:
	def test_grouped_by_category(self, client, db_session, child) -> None:
		db_session.add_all([
			SkillProgress(child_id=child.id, skill_category="narrative", skill_name="story_structure", score=2.55, level="DEVELOPING", total_attempts=2, last_assessed_at=datetime(2026, 3, 2)),
			SkillProgress(child_id=child.id, skill_category="narrative", skill_name="character_development", score=3.0, level="PROFICIENT", total_attempts=1),
			SkillProgress(child_id=child.id, skill_category="persuasive", skill_name="opinion_statement", score=1.5, level="EMERGING", total_attempts=1),
		])
		db_session.commit()
		body = client.get(f"/children/{child.id}/skills").json()
		assert body["childId"] == child.id
		assert set(body["categories"]) == {"narrative", "persuasive"}
		narrative = {s["skillName"]: s for s in body["categories"]["narrative"]}
		assert narrative["story_structure"]["level"] == "DEVELOPING"
		assert narrative["story_structure"]["totalAttempts"] == 2
		assert narrative["story_structure"]["lastAssessedAt"].startswith("2026-03-02")

	def test_empty(self, client, child) -> None:
		assert client.get(f"/children/{child.id}/skills").json() == {"childId": child.id, "categories": {}}
