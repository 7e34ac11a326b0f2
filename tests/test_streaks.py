"""Tests for the daily streak and weekly goal window."""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import event

from backend.app.models import Streak
from backend.app.streaks import update_streak, week_start

MONDAY = date(2026, 3, 2)


def _track_writes(engine) -> list[str]:
	statements: list[str] = []

	@event.listens_for(engine, "before_cursor_execute")
	def _record(conn, cursor, statement, parameters, context, executemany):
		if statement.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
			statements.append(statement)

	return statements


class TestStreak:
	def test_first_activity_creates_row(self, db_session, child) -> None:
		row = update_streak(db_session, child.id, today=MONDAY)
		assert (row.current_streak, row.longest_streak) == (1, 1)
		assert row.weekly_completed == 1
		assert row.week_start_date == MONDAY
		assert row.weekly_goal == 3

	def test_same_day_writes_nothing(self, engine, db_session, child) -> None:
		update_streak(db_session, child.id, today=MONDAY)
		writes = _track_writes(engine)
		assert update_streak(db_session, child.id, today=MONDAY) is None
		assert writes == []
		assert db_session.get(Streak, child.id).current_streak == 1

	def test_next_day_increments(self, db_session, child) -> None:
		update_streak(db_session, child.id, today=MONDAY)
		row = update_streak(db_session, child.id, today=MONDAY + timedelta(days=1))
		assert row.current_streak == 2
		assert row.longest_streak == 2
		assert row.weekly_completed == 2

	def test_gap_resets_but_keeps_longest(self, db_session, child) -> None:
		for offset in range(4):
			update_streak(db_session, child.id, today=MONDAY + timedelta(days=offset))
		row = update_streak(db_session, child.id, today=MONDAY + timedelta(days=3 + 3))
		assert row.current_streak == 1
		assert row.longest_streak == 4
		assert row.longest_streak >= row.current_streak

	def test_new_week_resets_weekly_count(self, db_session, child) -> None:
		update_streak(db_session, child.id, today=MONDAY + timedelta(days=5))
		update_streak(db_session, child.id, today=MONDAY + timedelta(days=6))
		row = update_streak(db_session, child.id, today=MONDAY + timedelta(days=7))
		assert row.current_streak == 3
		assert row.weekly_completed == 1
		assert row.week_start_date == MONDAY + timedelta(days=7)

	def test_week_start_is_monday(self) -> None:
		assert week_start(date(2026, 3, 8)) == MONDAY
		assert week_start(MONDAY) == MONDAY
