import logging
from typing import Any, List

import httpx
from pydantic import ValidationError

from ..errors import BackendRejected, LoadFailure
from ..schemas.quiz_schema import Option, Question, QuestionType, Quiz

logger = logging.getLogger(__name__)

DEFAULT_POINTS = 10


def normalize_quiz(raw: dict, quiz_id: str | None = None) -> Quiz:
    """
    Turn the backend's quiz document into a `Quiz`.

    Questions get 1-based positional ids; the backend id is kept as `original_id`.
    The id used to fetch the quiz wins over the document's `uuid`.
    """
    try:
        questions = []
        for index, q in enumerate(raw.get("questions") or []):
            correct = q.get("correct_answer")
            questions.append(Question(
                id=str(index + 1),
                original_id=q["id"],
                text=q["question_text"],
                type=QuestionType.single_choice,
                options=tuple(
                    Option(id=opt["option_index"], text=opt["text"], is_correct=opt["option_index"] == correct)
                    for opt in q.get("options") or []
                ),
                points=DEFAULT_POINTS,
            ))
        return Quiz(
            id=quiz_id or raw["uuid"],
            title=raw["name"],
            description=raw.get("description") or "",
            duration_seconds=raw["duration_in_sec_timestamp"],
            difficulty=raw.get("difficulty"),
            reward=raw.get("total_reward") or 0.0,
            questions=tuple(questions),
        )
    except (KeyError, TypeError, ValidationError) as e:
        raise LoadFailure(f"malformed quiz document: {e}") from e


class BackendClient:
    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def get_quiz_by_id(self, quiz_id: str) -> Quiz:
        try:
            resp = await self._client.get(f"/quiz/{quiz_id}")
        except httpx.HTTPError as e:
            raise LoadFailure(f"failed to load quiz {quiz_id}: {e}") from e
        if resp.status_code != 200:
            raise LoadFailure(f"failed to load quiz {quiz_id}: HTTP {resp.status_code}")
        try:
            raw = resp.json()
        except ValueError as e:
            raise LoadFailure(f"quiz {quiz_id} is not valid JSON") from e
        if not isinstance(raw, dict):
            raise LoadFailure(f"quiz {quiz_id} is not an object")
        return normalize_quiz(raw, quiz_id)

    async def submit_quiz(self, quiz_id: str, answers: List[dict], idempotency_key: str | None = None) -> Any:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        try:
            resp = await self._client.post("/quize/submit", json={"quiz_uuid": quiz_id, "answers": answers}, headers=headers)
        except httpx.HTTPError as e:
            raise BackendRejected(f"failed to submit answers for quiz {quiz_id}: {e}") from e
        if resp.status_code >= 300:
            raise BackendRejected(f"backend refused answers for quiz {quiz_id}: HTTP {resp.status_code} {resp.text}")
        logger.info("answers accepted by backend quiz_id=%s", quiz_id)
        return resp.text

    async def aclose(self) -> None:
        await self._client.aclose()
