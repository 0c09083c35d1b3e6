from typing import Dict, Tuple

from ..schemas.answer_schema import Answer, SingleValue, MultiValue


class AnswerStore:
    """At most one answer per question id; a later write replaces the earlier one.

    The position of a question in `in_recorded_order()` is the position of its
    first recording, the way an in-place replacement in a list would keep it.
    """

    def __init__(self, question_order: Tuple[str, ...] = ()) -> None:
        self._answers: Dict[str, Answer] = {}
        self._question_order = {qid: idx for idx, qid in enumerate(question_order)}

    def upsert(self, question_id: str, value: SingleValue | MultiValue) -> Answer:
        answer = Answer(question_id=question_id, value=value)
        # dict keeps the original insertion slot on reassignment
        self._answers[question_id] = answer
        return answer

    def get(self, question_id: str) -> Answer | None:
        return self._answers.get(question_id)

    def progress_count(self) -> int:
        return len(self._answers)

    def in_recorded_order(self) -> Tuple[Answer, ...]:
        return tuple(self._answers.values())

    def all(self) -> Tuple[Answer, ...]:
        """Snapshot ordered by question index; unknown ids sort last by recording order."""
        last = len(self._question_order)
        recorded = list(self._answers.values())
        return tuple(sorted(recorded, key=lambda a: self._question_order.get(a.question_id, last)))

    def __len__(self) -> int:
        return len(self._answers)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._answers
