from pydantic import BaseModel, ConfigDict
from typing import Any, Optional, Tuple
import enum
import json


class CommitOrder(str, enum.Enum):
    """Order of the answer pairs inside the canonical payload."""
    recorded = "recorded"
    question = "question"


class SubmissionAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: int
    answer: str


class Submission(BaseModel):
    """Canonical answer payload for one submit attempt. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    quiz_id: str
    answers: Tuple[SubmissionAnswer, ...] = ()

    def answers_payload(self) -> list:
        return [{"question_id": a.question_id, "answer": a.answer} for a in self.answers]

    def canonical_json(self) -> str:
        # compact separators and raw UTF-8, matching JSON.stringify output
        return json.dumps(
            {"quiz_id": self.quiz_id, "answers": self.answers_payload()},
            separators=(",", ":"),
            ensure_ascii=False,
        )


class TxResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    block_number: Optional[int] = None
    accepted: bool = True


class SubmissionOutcome(BaseModel):
    ok: bool
    forced: bool = False
    submission: Optional[Submission] = None
    commitment: Optional[str] = None
    tx: Optional[TxResult] = None
    backend_ack: Optional[Any] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
