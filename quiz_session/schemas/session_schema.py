from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional, Union
import enum

from .submission_schema import SubmissionOutcome


class SessionPhase(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


class Direction(str, enum.Enum):
    previous = "previous"
    next = "next"


class SessionState(BaseModel):
    phase: SessionPhase
    current_index: Optional[int] = None
    remaining_seconds: int
    progress: int
    question_count: int
    answers: Dict[str, str] = {}
    outcome: Optional[SubmissionOutcome] = None


class SessionCreate(BaseModel):
    quiz_id: str


class SessionCreateResponse(SessionState):
    id: str
    quiz_id: str
    title: str
    description: str = ""
    duration_seconds: int


class NavigatePayload(BaseModel):
    direction: Direction


class AnswerPayload(BaseModel):
    question_id: str
    value: Union[str, int, List[Union[str, int]]]


class ScoreResponse(BaseModel):
    question_scores: Dict[str, float]
    total: float
    max_total: float


class SubmissionRecordRead(BaseModel):
    commitment: str
    quiz_id: str
    payload: Any
    chain_status: str
    tx_hash: Optional[str] = None
    backend_status: str
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
