from typing import Dict, Tuple

from ..schemas.quiz_schema import Quiz, QuestionType
from .answer_store import AnswerStore


def grade_answers(quiz: Quiz, answers: AnswerStore) -> Tuple[Dict[str, float], float]:
    """
    Preview score from the client-side correctness flags.
    - quiz: the loaded Quiz (options carry is_correct)
    - answers: the session's AnswerStore

    Returns (question_scores keyed by question id, total). Unanswered questions score 0.
    Display only; the backend grade is authoritative.
    """
    question_scores: Dict[str, float] = {}
    total = 0.0

    for q in quiz.questions:
        answer = answers.get(q.id)
        score = 0.0
        if answer is not None and q.type == QuestionType.single_choice:
            correct = {o.id.upper() for o in q.options if o.is_correct}
            if answer.value.as_text() in correct:
                score = float(q.points)
        question_scores[q.id] = score
        total += score

    return question_scores, total
