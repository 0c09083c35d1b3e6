from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, Tuple
import enum


class QuestionType(str, enum.Enum):
    """Enums for valid question types."""
    single_choice = "single_choice"


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Option label, e.g. 'A'.")
    text: str
    # known client-side for local preview only; never the authoritative grade
    is_correct: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def label_as_string(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class Question(BaseModel):
    """
    A single question as presented in a session.

    `id` is the 1-based position inside the quiz; `original_id` is the identifier
    the backend knows the question by and is what goes into submissions.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    original_id: int = Field(..., ge=0)
    text: str
    type: QuestionType = QuestionType.single_choice
    options: Tuple[Option, ...] = ()
    points: int = Field(10, ge=0)

    @field_validator("original_id", mode="before")
    @classmethod
    def original_id_as_number(cls, v):
        # answers are keyed by an unsigned integer question id
        if isinstance(v, bool):
            raise ValueError("question id must be a number")
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return v

    @model_validator(mode="after")
    def option_ids_unique(self):
        ids = [o.id for o in self.options]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate option ids in question {self.id}")
        return self

    def option_ids(self) -> Tuple[str, ...]:
        return tuple(o.id for o in self.options)


class Quiz(BaseModel):
    """Normalized quiz, immutable for the lifetime of a session."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    duration_seconds: int
    difficulty: Optional[str] = None
    reward: float = 0.0
    questions: Tuple[Question, ...] = ()

    @field_validator("duration_seconds")
    @classmethod
    def duration_not_negative(cls, v):
        if v is None or v < 0:
            raise ValueError("duration_seconds must be zero or a positive integer")
        return v

    @model_validator(mode="after")
    def question_ids_unique(self):
        ids = [q.id for q in self.questions]
        if len(set(ids)) != len(ids):
            raise ValueError("duplicate question ids")
        return self

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def question_by_id(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def index_of(self, question_id: str) -> int:
        for idx, q in enumerate(self.questions):
            if q.id == question_id:
                return idx
        return -1


class OptionView(BaseModel):
    id: str
    text: str


class QuestionView(BaseModel):
    """Question as sent to the UI, without correctness flags."""
    index: int
    id: str
    text: str
    type: QuestionType
    options: Tuple[OptionView, ...]
    points: int
    answer: Optional[str] = None


def sanitize_question(index: int, q: Question, answer: Optional[str] = None) -> QuestionView:
    # drop is_correct so the UI never receives it
    return QuestionView(
        index=index,
        id=q.id,
        text=q.text,
        type=q.type,
        options=tuple(OptionView(id=o.id, text=o.text) for o in q.options),
        points=q.points,
        answer=answer,
    )
