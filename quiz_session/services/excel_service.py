import pandas as pd
import json
import string

from pydantic import ValidationError

from ..errors import LoadFailure
from ..schemas.quiz_schema import Option, Question, Quiz


REQUIRED_COLUMNS = [
    "question_text",
    "options(json)",
    "correct_answer",
]


def _options_from_cell(value, correct):
    raw = json.loads(value) if pd.notna(value) else []
    options = []
    for idx, item in enumerate(raw):
        # plain strings get A, B, C... labels by position
        if isinstance(item, dict):
            label, text = str(item["option_index"]), item["text"]
        else:
            label, text = string.ascii_uppercase[idx], str(item)
        options.append(Option(id=label, text=text, is_correct=label.upper() == correct))
    return tuple(options)


def parse_quiz_workbook(file, quiz_id, title, duration_seconds, description="", difficulty=None, reward=0.0):
    """
    Build a Quiz from a spreadsheet with one question per row.

    Columns: question_text, options(json), correct_answer, and optionally id and points.
    Raises LoadFailure when the file cannot be read or columns are missing.
    """
    try:
        df = pd.read_excel(file)
    except Exception as e:
        raise LoadFailure(f"could not read quiz workbook: {e}") from e

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise LoadFailure(f"missing column: {missing[0]}")

    questions = []
    try:
        for position, (_, row) in enumerate(df.iterrows(), start=1):
            correct = str(row["correct_answer"]).strip().upper() if pd.notna(row["correct_answer"]) else None
            original_id = position
            if "id" in df.columns and pd.notna(row["id"]):
                original_id = row["id"].item() if hasattr(row["id"], "item") else row["id"]
            points = row.get("points") if "points" in df.columns and pd.notna(row.get("points")) else 10
            questions.append(Question(
                id=str(position),
                original_id=original_id,
                text=str(row["question_text"]),
                options=_options_from_cell(row["options(json)"], correct),
                points=int(points),
            ))
        return Quiz(
            id=quiz_id,
            title=title,
            description=description,
            duration_seconds=duration_seconds,
            difficulty=difficulty,
            reward=reward,
            questions=tuple(questions),
        )
    except (ValueError, KeyError, TypeError, ValidationError) as e:
        raise LoadFailure(f"invalid quiz workbook: {e}") from e
