"""Shared fixtures: in-memory database, scripted coach model, API client."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.catalog import Catalog, get_catalog
from backend.app.db import get_db, init_db
from backend.app.gemini_client import get_coach_model, get_grader_model, get_optional_coach_model
from backend.app.main import app
from backend.app.models import Child
from backend.app.routers.auth import User, get_current_user

PARENT = "parent"


def grade_reply(scores: Dict[str, float], overall: Optional[float] = None, **feedback: str) -> str:
	"""Build a grading reply the way the model is asked to format it."""
	body: Dict[str, Any] = {
		"scores": scores,
		"feedback": {
			"strength": feedback.get("strength", "Your opening line makes me curious."),
			"growth": feedback.get("growth", "Add one detail about where Emma is."),
			"encouragement": feedback.get("encouragement", "Keep writing, you are doing great!"),
		},
	}
	if overall is not None:
		body["overall"] = overall
	return json.dumps(body)


GENERAL_GRADE = grade_reply({"creativity": 3, "effort": 3.5, "skill_practice": 3}, overall=3.2)


class FakeCoachModel:
	"""Scripted stand-in for the Gemini client.

	Replies are consumed in order; an Exception in a queue is raised instead,
	and a callable queued for grading is called for its reply.
	"""

	def __init__(self) -> None:
		self.chat_replies: List[Any] = []
		self.grade_replies: List[Any] = []
		self.chat_calls: List[tuple[str, List[Dict[str, Any]]]] = []
		self.generate_calls: List[str] = []

	def queue_chat(self, *replies: Any) -> None:
		self.chat_replies.extend(replies)

	def queue_grade(self, *replies: Any) -> None:
		self.grade_replies.extend(replies)

	async def chat(self, system_prompt: str, turns: Sequence[Dict[str, Any]]) -> str:
		self.chat_calls.append((system_prompt, [dict(t) for t in turns]))
		reply = self.chat_replies.pop(0) if self.chat_replies else "Tell me more! [EXPECTS_RESPONSE]"
		if isinstance(reply, Exception):
			raise reply
		return reply

	async def generate(self, prompt: str) -> str:
		self.generate_calls.append(prompt)
		reply = self.grade_replies.pop(0) if self.grade_replies else GENERAL_GRADE
		if callable(reply):
			reply = reply()
		if isinstance(reply, Exception):
			raise reply
		return reply


@pytest.fixture()
def engine():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	init_db(bind=engine)
	yield engine
	engine.dispose()


@pytest.fixture()
def session_factory(engine) -> Callable:
	return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture()
def catalog() -> Catalog:
	return get_catalog()


@pytest.fixture()
def fake_model() -> FakeCoachModel:
	return FakeCoachModel()


@pytest.fixture()
def child(db_session) -> Child:
	row = Child(parent_username=PARENT, name="Emma", tier=1)
	db_session.add(row)
	db_session.commit()
	db_session.refresh(row)
	return row


@pytest.fixture()
def other_child(db_session) -> Child:
	row = Child(parent_username="someone_else", name="Sam", tier=1)
	db_session.add(row)
	db_session.commit()
	db_session.refresh(row)
	return row


@pytest.fixture()
def client(session_factory, fake_model):
	def _get_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_current_user] = lambda: User(username=PARENT)
	app.dependency_overrides[get_coach_model] = lambda: fake_model
	app.dependency_overrides[get_grader_model] = lambda: fake_model
	app.dependency_overrides[get_optional_coach_model] = lambda: fake_model
	yield TestClient(app)
	app.dependency_overrides.clear()


@pytest.fixture()
def session_in_assessment(client, fake_model, child) -> Callable[[str], str]:
	"""Drive a fresh lesson session to the assessment phase; returns its id."""

	def _start(lesson_id: str = "N1.1.4") -> str:
		fake_model.queue_chat(
			"Hi Emma! Today we learn about hooks. [STEP: 1]",
			"Yes, that is a hook! [COMPREHENSION_CHECK: passed] [PHASE_TRANSITION: guided]",
			"Wonderful practice. [PHASE_TRANSITION: assessment] [WRITING_PROMPT]",
		)
		started = client.post("/lessons/start", json={"childId": child.id, "lessonId": lesson_id})
		assert started.status_code == 200, started.text
		session_id = started.json()["sessionId"]
		for message in ("A hook makes the reader curious.", "The dragon sneezed and the castle fell."):
			resp = client.post("/lessons/message", json={"sessionId": session_id, "message": message})
			assert resp.status_code == 200, resp.text
		assert resp.json()["phase"] == "assessment"
		return session_id

	return _start
