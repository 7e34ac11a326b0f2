from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username (parent account)
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Token jti; a token is only valid while its row exists
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), ForeignKey("auth_users.username"), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Child(Base):
	__tablename__ = "children"
	id = Column(String(64), primary_key=True, default=_new_id)
	parent_username = Column(String(128), nullable=False, index=True)
	name = Column(String(128), nullable=False)
	tier = Column(Integer, default=1, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LessonSession(Base):
	__tablename__ = "lesson_sessions"
	id = Column(String(64), primary_key=True, default=_new_id)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	lesson_id = Column(String(32), nullable=False)
	phase = Column(String(16), default="instruction", nullable=False)
	phase_state = Column(Text, default="{}", nullable=False)  # JSON object
	conversation_history = Column(Text, default="[]", nullable=False)  # JSON array of turns
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LessonProgress(Base):
	__tablename__ = "lesson_progress"
	__table_args__ = (UniqueConstraint("child_id", "lesson_id", name="uq_lesson_progress"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	lesson_id = Column(String(32), nullable=False)
	status = Column(String(16), default="in_progress", nullable=False)
	current_phase = Column(String(16), default="instruction", nullable=False)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=True)
	completed_at = Column(DateTime, nullable=True)


class WritingSubmission(Base):
	__tablename__ = "writing_submissions"
	# One row per accepted submission; a session can never hold two rows with the same revision number
	__table_args__ = (UniqueConstraint("session_id", "revision_number", name="uq_submission_revision"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	session_id = Column(String(64), ForeignKey("lesson_sessions.id"), nullable=False, index=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	text = Column(Text, nullable=False)
	word_count = Column(Integer, nullable=False)
	revision_of = Column(Integer, ForeignKey("writing_submissions.id"), nullable=True)
	revision_number = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Assessment(Base):
	__tablename__ = "assessments"
	id = Column(Integer, primary_key=True, autoincrement=True)
	session_id = Column(String(64), ForeignKey("lesson_sessions.id"), nullable=False, index=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	lesson_id = Column(String(32), nullable=False)
	submission_id = Column(Integer, ForeignKey("writing_submissions.id"), nullable=False)
	rubric_id = Column(String(64), nullable=False)
	scores = Column(Text, nullable=False)  # JSON object criterion -> score
	overall_score = Column(Float, nullable=False)
	feedback = Column(Text, nullable=False)  # JSON {strength, growth, encouragement}
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SkillProgress(Base):
	__tablename__ = "skill_progress"
	__table_args__ = (UniqueConstraint("child_id", "skill_category", "skill_name", name="uq_skill_progress"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	skill_category = Column(String(32), nullable=False)
	skill_name = Column(String(64), nullable=False)
	score = Column(Float, nullable=False)
	level = Column(String(16), nullable=False)
	total_attempts = Column(Integer, default=0, nullable=False)
	last_assessed_at = Column(DateTime, default=datetime.utcnow, nullable=True)


class Streak(Base):
	__tablename__ = "streaks"
	child_id = Column(String(64), ForeignKey("children.id"), primary_key=True)
	current_streak = Column(Integer, default=0, nullable=False)
	longest_streak = Column(Integer, default=0, nullable=False)
	last_active_date = Column(Date, nullable=True)
	week_start_date = Column(Date, nullable=True)
	weekly_completed = Column(Integer, default=0, nullable=False)
	weekly_goal = Column(Integer, default=3, nullable=False)


class Achievement(Base):
	__tablename__ = "achievements"
	__table_args__ = (UniqueConstraint("child_id", "badge_id", name="uq_achievement"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	badge_id = Column(String(32), nullable=False)
	unlocked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	seen = Column(Boolean, default=False, nullable=False)


class Curriculum(Base):
	__tablename__ = "curricula"
	id = Column(String(64), primary_key=True, default=_new_id)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	status = Column(String(16), default="ACTIVE", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CurriculumWeek(Base):
	__tablename__ = "curriculum_weeks"
	id = Column(Integer, primary_key=True, autoincrement=True)
	curriculum_id = Column(String(64), ForeignKey("curricula.id"), nullable=False, index=True)
	week_number = Column(Integer, nullable=False)
	theme = Column(String(128), nullable=False)
	lesson_ids = Column(Text, nullable=False)  # JSON array of lesson ids
	status = Column(String(16), default="pending", nullable=False)


class CurriculumRevision(Base):
	__tablename__ = "curriculum_revisions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	curriculum_id = Column(String(64), ForeignKey("curricula.id"), nullable=False, index=True)
	reason = Column(String(32), nullable=False)
	description = Column(Text, nullable=True)
	previous_plan = Column(Text, nullable=False)  # JSON snapshot of rewritten weeks
	new_plan = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StudentPreference(Base):
	__tablename__ = "student_preferences"
	id = Column(Integer, primary_key=True, autoincrement=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	category = Column(String(64), nullable=False)
	value = Column(String(256), nullable=False)
	source = Column(String(32), nullable=True)  # lesson id the preference was detected in
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WritingSample(Base):
	__tablename__ = "writing_samples"
	id = Column(Integer, primary_key=True, autoincrement=True)
	child_id = Column(String(64), ForeignKey("children.id"), nullable=False, index=True)
	lesson_id = Column(String(32), nullable=False)
	sample_type = Column(String(32), nullable=False)
	criterion = Column(String(64), nullable=False)
	excerpt = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
