from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
	"""Request/response bodies use camelCase on the wire."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- lessons ----

class StartLessonRequest(CamelModel):
	child_id: str
	lesson_id: str


class MessageRequest(CamelModel):
	session_id: str
	message: str


class WritingRequest(CamelModel):
	session_id: str
	text: str


class SessionView(CamelModel):
	session_id: str
	child_id: str
	lesson_id: str
	lesson_title: str
	phase: str
	phase_state: Dict[str, Any]
	conversation_history: List[Dict[str, Any]]
	resumed: bool = False


class MessageResponse(CamelModel):
	response: Dict[str, Any]
	phase: str
	phase_update: Optional[str] = None
	step_update: Optional[int] = None
	guided_stage_update: Optional[int] = None
	assessment_ready: bool = False


# ---- children ----

class CreateChildRequest(CamelModel):
	name: str
	tier: int = Field(default=1, ge=1, le=3)


class ChildView(CamelModel):
	id: str
	name: str
	tier: int


class BadgeView(CamelModel):
	id: str
	name: str
	emoji: str
	description: str
	category: str
	unlocked_at: Optional[str] = None
	seen: bool = False


class BadgesResponse(CamelModel):
	badges: List[BadgeView]
	total: int
	unseen: int


class MarkSeenRequest(CamelModel):
	badge_ids: List[str]


class StreakView(CamelModel):
	current_streak: int = 0
	longest_streak: int = 0
	last_active_date: Optional[str] = None
	weekly_goal: int = 3
	weekly_completed: int = 0


class StreakGoalRequest(CamelModel):
	weekly_goal: Any


# ---- curriculum ----

class CurriculumWeekView(CamelModel):
	week_number: int
	theme: str
	lesson_ids: List[str]
	status: str


class CurriculumRevisionView(CamelModel):
	id: int
	reason: str
	description: Optional[str] = None
	previous_plan: Any
	new_plan: Any
	created_at: Optional[str] = None


class CurriculumView(CamelModel):
	id: str
	child_id: str
	status: str
	weeks: List[CurriculumWeekView]
	revisions: List[CurriculumRevisionView] = []
