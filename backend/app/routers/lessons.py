from __future__ import annotations
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..access import get_owned_child, get_owned_session
from ..catalog import Catalog, get_catalog
from ..conversation import load_history, load_state, require_lesson, run_coach_turn, start_session
from ..db import get_db
from ..gemini_client import GeminiClient, get_coach_model, get_grader_model
from ..grading import revise_writing, session_assessments, submit_writing
from ..models import LessonSession
from ..schemas import MessageRequest, MessageResponse, SessionView, StartLessonRequest, WritingRequest
from .auth import User, get_current_user

router = APIRouter(prefix="/lessons", tags=["lessons"])

logger = logging.getLogger(__name__)


def _session_view(session: LessonSession, catalog: Catalog, *, resumed: bool = False) -> SessionView:
	lesson = require_lesson(catalog, session.lesson_id)
	return SessionView(
		session_id=session.id,
		child_id=session.child_id,
		lesson_id=session.lesson_id,
		lesson_title=lesson.title,
		phase=session.phase,
		phase_state=load_state(session).model_dump(mode="json"),
		conversation_history=load_history(session),
		resumed=resumed,
	)


@router.post("/start", response_model=SessionView)
async def start_lesson(
	req: StartLessonRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
	model: GeminiClient = Depends(get_coach_model),
):
	child = get_owned_child(db, req.child_id, user.username)
	session, resumed = await start_session(db, catalog, model, child, req.lesson_id)
	return _session_view(session, catalog, resumed=resumed)


@router.post("/message", response_model=MessageResponse)
async def send_message(
	req: MessageRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
	model: GeminiClient = Depends(get_coach_model),
):
	session, child = get_owned_session(db, req.session_id, user.username)
	result = await run_coach_turn(db, catalog, model, session, child, req.message)
	return MessageResponse(
		response=result.turn,
		phase=result.phase.value,
		phase_update=result.phase_update,
		step_update=result.step_update,
		guided_stage_update=result.guided_stage_update,
		assessment_ready=result.assessment_ready,
	)


@router.post("/submit")
async def submit(
	req: WritingRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
	model: GeminiClient = Depends(get_grader_model),
):
	session, child = get_owned_session(db, req.session_id, user.username)
	return await submit_writing(db, catalog, model, session, child, req.text)


@router.post("/revise")
async def revise(
	req: WritingRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
	model: GeminiClient = Depends(get_grader_model),
):
	session, child = get_owned_session(db, req.session_id, user.username)
	return await revise_writing(db, catalog, model, session, child, req.text)


@router.get("/sessions/{session_id}")
async def get_session(
	session_id: str,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	catalog: Catalog = Depends(get_catalog),
):
	session, _ = get_owned_session(db, session_id, user.username)
	view = _session_view(session, catalog).model_dump(by_alias=True)
	view["assessments"] = session_assessments(db, session.id)
	return view
