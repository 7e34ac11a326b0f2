from __future__ import annotations
from typing import Tuple

from sqlalchemy.orm import Session

from .errors import NotFoundError, OwnershipError
from .models import Child, LessonSession


def get_owned_child(db: Session, child_id: str, username: str) -> Child:
	child = db.get(Child, child_id)
	if child is None:
		raise NotFoundError("Child not found")
	if child.parent_username != username:
		raise OwnershipError("Child not found")
	return child


def get_owned_session(db: Session, session_id: str, username: str) -> Tuple[LessonSession, Child]:
	session = db.get(LessonSession, session_id)
	if session is None:
		raise NotFoundError("Session not found")
	child = db.get(Child, session.child_id)
	if child is None or child.parent_username != username:
		raise OwnershipError("Session not found")
	return session, child
