import asyncio
import logging
from typing import Any, Dict

from ..errors import BackendRejected, InvalidPhase, NotConnected, QuizSessionError, UnknownQuestion
from ..schemas.answer_schema import MultiValue, SingleValue
from ..schemas.quiz_schema import Question, QuestionType, Quiz
from ..schemas.session_schema import Direction, SessionPhase, SessionState
from ..schemas.submission_schema import SubmissionOutcome
from .answer_store import AnswerStore
from .commit_service import CommitProtocol, commitment_for, select_answers
from .timer_service import CountdownTimer

logger = logging.getLogger(__name__)

INTERNAL_ERROR_KIND = "internal_error"


def to_answer_value(question: Question, value: Any) -> SingleValue | MultiValue:
    """Convert a raw UI value into an answer value for `question`.

    Single-choice questions keep only the first element of a list.
    """
    if isinstance(value, (SingleValue, MultiValue)):
        return value
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValueError("answer must contain at least one value")
        if question.type == QuestionType.single_choice:
            if len(value) > 1:
                logger.warning("question %s is single choice; keeping %r of %r", question.id, value[0], list(value))
            return SingleValue(value=str(value[0]))
        return MultiValue(values=tuple(str(v) for v in value))
    if value is None or str(value) == "":
        raise ValueError("answer must not be empty")
    return SingleValue(value=str(value))


class QuizSession:
    """
    State machine for one session: not_started -> in_progress -> submitting -> submitted | failed.

    Only one of a manual submit and the timer-forced submit leaves in_progress; the
    phase flips to submitting before the first await, so the other one finds a
    different phase and does nothing.
    """

    def __init__(self, quiz: Quiz, protocol: CommitProtocol, tick_interval: float = 1.0) -> None:
        self.quiz = quiz
        self._protocol = protocol
        self._questions_by_id: Dict[str, Question] = {q.id: q for q in quiz.questions}
        self._answers = AnswerStore(tuple(q.id for q in quiz.questions))
        self._timer = CountdownTimer(quiz.duration_seconds, self._on_timer_expired, tick_interval=tick_interval)
        self._phase = SessionPhase.NOT_STARTED
        self._index: int | None = None
        self._outcome: SubmissionOutcome | None = None
        self._last_error: QuizSessionError | None = None
        self._closed = False
        self.submission_task: asyncio.Task | None = None

    # --- observers ---

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def current_index(self) -> int | None:
        return self._index

    @property
    def current_question(self) -> Question | None:
        if self._index is None:
            return None
        return self.quiz.questions[self._index]

    @property
    def remaining_seconds(self) -> int:
        return self._timer.remaining

    @property
    def progress(self) -> int:
        return self._answers.progress_count()

    @property
    def outcome(self) -> SubmissionOutcome | None:
        return self._outcome

    @property
    def answers(self) -> AnswerStore:
        return self._answers

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionState:
        return SessionState(
            phase=self._phase,
            current_index=self._index,
            remaining_seconds=self.remaining_seconds,
            progress=self.progress,
            question_count=self.quiz.question_count,
            answers={a.question_id: a.value.as_text() for a in self._answers.all()},
            outcome=self._outcome,
        )

    # --- actions ---

    def _require(self, *phases: SessionPhase) -> None:
        if self._closed:
            raise InvalidPhase("session is closed")
        if self._phase not in phases:
            raise InvalidPhase(f"not allowed while {self._phase.value}")

    def start(self) -> None:
        self._require(SessionPhase.NOT_STARTED)
        self._timer.start()
        self._phase = SessionPhase.IN_PROGRESS
        # an empty quiz has no valid index
        if self.quiz.question_count:
            self._index = 0
        logger.info("session started quiz_id=%s duration=%ss", self.quiz.id, self.quiz.duration_seconds)

    def go_to(self, direction: Direction) -> bool:
        self._require(SessionPhase.IN_PROGRESS)
        if self._index is None:
            return False
        direction = Direction(direction)
        target = self._index - 1 if direction == Direction.previous else self._index + 1
        if target < 0 or target >= self.quiz.question_count:
            return False
        self._index = target
        return True

    def record_answer(self, question_id: str, value: Any) -> int:
        """Record (or replace) the answer for `question_id` and return the progress count."""
        self._require(SessionPhase.IN_PROGRESS)
        question = self._questions_by_id.get(question_id)
        if question is None:
            raise UnknownQuestion(f"question {question_id} is not part of quiz {self.quiz.id}")
        self._answers.upsert(question_id, to_answer_value(question, value))
        return self._answers.progress_count()

    async def submit(self, forced: bool = False) -> SubmissionOutcome | None:
        # a forced submit only ever leaves in_progress; retries from failed are manual
        allowed = (SessionPhase.IN_PROGRESS,) if forced else (SessionPhase.IN_PROGRESS, SessionPhase.FAILED)
        if self._closed or self._phase not in allowed:
            logger.info("submit ignored while %s (forced=%s)", self._phase.value, forced)
            return None
        if not forced and not self._protocol.is_ready:
            # user-actionable: nothing changes, the timer keeps running
            raise NotConnected("Please connect your wallet to submit the quiz")

        self._phase = SessionPhase.SUBMITTING
        self._timer.stop()
        answers = select_answers(self._answers, self._protocol.order)
        try:
            outcome = await self._protocol.commit(self.quiz.id, answers, self._questions_by_id)
        except QuizSessionError as e:
            return self._fail(e, forced)
        except Exception as e:
            logger.exception("unexpected error while submitting quiz_id=%s", self.quiz.id)
            if not self._closed:
                self._phase = SessionPhase.FAILED
                self._last_error = None
                self._outcome = SubmissionOutcome(
                    ok=False, forced=forced, error_kind=INTERNAL_ERROR_KIND, message=str(e),
                )
            raise
        if self._closed:
            return None
        outcome.forced = forced
        return self._succeed(outcome)

    async def retry_backend(self) -> SubmissionOutcome | None:
        """Resend only the plaintext answers of an attempt whose chain write was accepted."""
        self._require(SessionPhase.FAILED)
        failed = self._last_error
        if not isinstance(failed, BackendRejected) or failed.submission is None:
            raise InvalidPhase("only a submission rejected by the backend can be resent")
        self._phase = SessionPhase.SUBMITTING
        forced = bool(self._outcome and self._outcome.forced)
        commitment_hex = self._outcome.commitment if self._outcome else None
        try:
            ack = await self._protocol.send_backend(failed.submission, commitment_hex, failed.tx)
        except QuizSessionError as e:
            return self._fail(e, forced)
        if self._closed:
            return None
        return self._succeed(SubmissionOutcome(
            ok=True, forced=forced, submission=failed.submission, commitment=commitment_hex,
            tx=failed.tx, backend_ack=ack,
        ))

    def close(self) -> None:
        """Tear down: stop the timer and make outstanding work inert."""
        if self._closed:
            return
        self._closed = True
        self._timer.stop()
        task = self.submission_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.info("session closed quiz_id=%s phase=%s", self.quiz.id, self._phase.value)

    # --- internals ---

    def _succeed(self, outcome: SubmissionOutcome) -> SubmissionOutcome:
        self._phase = SessionPhase.SUBMITTED
        self._outcome = outcome
        self._last_error = None
        logger.info("quiz submitted quiz_id=%s commitment=%s", self.quiz.id, outcome.commitment)
        return outcome

    def _fail(self, error: QuizSessionError, forced: bool) -> SubmissionOutcome | None:
        if self._closed:
            return None
        submission = getattr(error, "submission", None)
        tx = getattr(error, "tx", None)
        commitment = "0x" + commitment_for(submission).hex() if submission is not None else None
        self._phase = SessionPhase.FAILED
        self._last_error = error
        self._outcome = SubmissionOutcome(
            ok=False, forced=forced, submission=submission, commitment=commitment, tx=tx,
            error_kind=error.kind, message=error.message,
        )
        logger.warning("submission failed quiz_id=%s kind=%s: %s", self.quiz.id, error.kind, error.message)
        return self._outcome

    def _on_timer_expired(self) -> None:
        if self._closed or self._phase != SessionPhase.IN_PROGRESS or self.submission_task is not None:
            return
        logger.info("time is up for quiz_id=%s, submitting automatically", self.quiz.id)
        self.submission_task = asyncio.get_running_loop().create_task(self.submit(forced=True))
        self.submission_task.add_done_callback(self._forced_submit_done)

    def _forced_submit_done(self, task: asyncio.Task) -> None:
        # nothing awaits the forced submit, so its exception is retrieved here
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("forced submit crashed quiz_id=%s: %r", self.quiz.id, error)
