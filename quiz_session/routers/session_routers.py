from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..db import get_async_session
from ..dependencies import SessionServices, get_quiz_session, get_services
from ..errors import (
    BackendRejected, ChainRejected, InvalidPhase, LoadFailure, NotConnected, QuizSessionError, UnknownQuestion,
)
from ..schemas.quiz_schema import QuestionView, sanitize_question
from ..schemas.session_schema import (
    AnswerPayload, NavigatePayload, ScoreResponse, SessionCreate, SessionCreateResponse, SessionState,
    SubmissionRecordRead,
)
from ..services.grading_service import grade_answers
from ..services.ledger_service import find_unreconciled
from ..services.session_service import QuizSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sessions"])


ERROR_STATUS = {
    InvalidPhase: status.HTTP_409_CONFLICT,
    UnknownQuestion: status.HTTP_404_NOT_FOUND,
    NotConnected: status.HTTP_400_BAD_REQUEST,
    LoadFailure: status.HTTP_404_NOT_FOUND,
    ChainRejected: status.HTTP_502_BAD_GATEWAY,
    BackendRejected: status.HTTP_502_BAD_GATEWAY,
}


def _http_error(e: QuizSessionError) -> HTTPException:
    code = ERROR_STATUS.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail={"kind": e.kind, "message": e.message})


def _outcome_or_error(session: QuizSession, outcome) -> SessionState:
    # a failed commit is a state of the session, but the caller still gets an error status
    if outcome is not None and not outcome.ok:
        code = status.HTTP_400_BAD_REQUEST if outcome.error_kind == NotConnected.kind else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail={"kind": outcome.error_kind, "message": outcome.message})
    return session.snapshot()


@router.post("/sessions", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_session(payload: SessionCreate, services: SessionServices = Depends(get_services)):
    try:
        quiz = await services.quiz_source.get_quiz_by_id(payload.quiz_id)
    except LoadFailure as e:
        logger.warning("failed to load quiz_id=%s: %s", payload.quiz_id, e.message)
        raise _http_error(e)

    session_id, session = services.registry.create(quiz)
    state = session.snapshot()
    return SessionCreateResponse(
        id=session_id,
        quiz_id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        duration_seconds=quiz.duration_seconds,
        **state.model_dump(),
    )


@router.get("/sessions/{session_id}", response_model=SessionState)
async def get_session_state(session: QuizSession = Depends(get_quiz_session)):
    return session.snapshot()


@router.get("/sessions/{session_id}/question", response_model=QuestionView)
async def get_current_question(session: QuizSession = Depends(get_quiz_session)):
    question = session.current_question
    if question is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Session has not started")
    answer = session.answers.get(question.id)
    return sanitize_question(session.current_index, question, answer.value.as_text() if answer else None)


@router.post("/sessions/{session_id}/start", response_model=SessionState)
async def start_session(session: QuizSession = Depends(get_quiz_session)):
    try:
        session.start()
    except InvalidPhase as e:
        raise _http_error(e)
    return session.snapshot()


@router.post("/sessions/{session_id}/navigate", response_model=SessionState)
async def navigate(payload: NavigatePayload, session: QuizSession = Depends(get_quiz_session)):
    try:
        session.go_to(payload.direction)
    except InvalidPhase as e:
        raise _http_error(e)
    # refusal at a bound is not an error; the unchanged index says it all
    return session.snapshot()


@router.put("/sessions/{session_id}/answers", response_model=SessionState)
async def record_answer(payload: AnswerPayload, session: QuizSession = Depends(get_quiz_session)):
    try:
        session.record_answer(payload.question_id, payload.value)
    except (InvalidPhase, UnknownQuestion) as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/submit", response_model=SessionState)
async def submit_session(session: QuizSession = Depends(get_quiz_session)):
    try:
        outcome = await session.submit()
    except NotConnected as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Error while submitting quiz_id=%s: %s", session.quiz.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _outcome_or_error(session, outcome)


@router.post("/sessions/{session_id}/submit/backend", response_model=SessionState)
async def resend_answers(session: QuizSession = Depends(get_quiz_session)):
    try:
        outcome = await session.retry_backend()
    except InvalidPhase as e:
        raise _http_error(e)
    return _outcome_or_error(session, outcome)


@router.get("/sessions/{session_id}/score", response_model=ScoreResponse)
async def preview_score(session: QuizSession = Depends(get_quiz_session)):
    question_scores, total = grade_answers(session.quiz, session.answers)
    max_total = float(sum(q.points for q in session.quiz.questions))
    return ScoreResponse(question_scores=question_scores, total=total, max_total=max_total)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, services: SessionServices = Depends(get_services)):
    if not services.registry.discard(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.get("/reconciliation", response_model=List[SubmissionRecordRead])
async def list_unreconciled(session: AsyncSession = Depends(get_async_session)):
    """Commitments recorded on chain whose plaintext answers the backend never accepted."""
    return await find_unreconciled(session)
