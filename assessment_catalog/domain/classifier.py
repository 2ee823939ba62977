"""
Question classification.

Turns a raw question payload (as sent by a caller, or as previously stored)
into one of the question variants. Multiple choice wins over coding; a
payload with neither usable options nor starter code stays unclassified.
Classification is deterministic and idempotent: feeding a question's
``to_item()`` back in with the same position yields an equal question.
"""

from __future__ import annotations

import string
from collections.abc import Iterable, Mapping
from typing import Any

from .models import (
    DEFAULT_SUBCATEGORY,
    CodingQuestion,
    CodingTestCase,
    Difficulty,
    MultipleChoiceQuestion,
    Option,
    Question,
    UnclassifiedQuestion,
)


def option_letter(index: int) -> str:
    """A, B, ..., Z, AA, AB, ... for a 0-based option index."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = string.ascii_uppercase[remainder] + letters
    return letters


def format_question_id(position: int) -> str:
    return f"Q_{position:03d}"


def _option_text(option: Any) -> str:
    if isinstance(option, str):
        return option
    if isinstance(option, Mapping):
        text = option.get("text")
        return text if isinstance(text, str) else ""
    return ""


def has_usable_options(options: Any) -> bool:
    if not options or not isinstance(options, (list, tuple)):
        return False
    return any(_option_text(option).strip() for option in options)


def has_starter_code(starter_code: Any) -> bool:
    return isinstance(starter_code, str) and bool(starter_code.strip())


def normalize_options(options: Iterable[Any]) -> list[Option]:
    normalized = []
    for index, option in enumerate(options):
        if isinstance(option, Mapping):
            option_id = option.get("id") or option_letter(index)
            normalized.append(Option(id=str(option_id), text=_option_text(option)))
        else:
            normalized.append(Option(id=option_letter(index), text=_option_text(option)))
    return normalized


def normalize_answer_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def normalize_test_cases(test_cases: Any) -> list[CodingTestCase]:
    if not test_cases or not isinstance(test_cases, (list, tuple)):
        return []
    normalized = []
    for case in test_cases:
        if not isinstance(case, Mapping):
            continue
        inputs = case.get("inputs")
        if not isinstance(inputs, Mapping):
            inputs = {"input": case.get("input")}
        normalized.append(
            CodingTestCase(inputs=dict(inputs), expected_output=case.get("expectedOutput"))
        )
    return normalized


def normalize_difficulty(value: Any, fallback: str | None = None) -> str:
    for candidate in (value, fallback):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip().upper()
    return Difficulty.MEDIUM.value


def classify_question(
    raw: Mapping[str, Any], position: int, default_difficulty: str | None = None
) -> Question:
    """
    Classify one raw question.

    Args:
        raw: Caller payload or stored question item
        position: 1-based position of the question within the whole assessment
        default_difficulty: The assessment's difficulty, used when the
            question carries none

    Returns:
        MultipleChoiceQuestion, CodingQuestion or UnclassifiedQuestion
    """
    if position < 1:
        raise ValueError("Question position is 1-based")

    common: dict[str, Any] = {
        "question_id": format_question_id(position),
        "question_number": position,
        "question": raw.get("text") or raw.get("question") or "",
        "points": raw.get("marks") or raw.get("points") or 1,
        "difficulty": normalize_difficulty(raw.get("difficulty"), default_difficulty),
        "subcategory": raw.get("subcategory") or DEFAULT_SUBCATEGORY,
    }

    options = raw.get("options")
    if has_usable_options(options):
        mcq = MultipleChoiceQuestion(
            **common,
            options=normalize_options(options),
            correct_answer=normalize_answer_list(raw.get("correctAnswer")),
        )
        if raw.get("answerType") == "numeric":
            mcq.answer_type = "numeric"
            mcq.correct_answers = normalize_answer_list(raw.get("correctAnswers"))
            mcq.answer_range = raw.get("range") or None
            mcq.unit = raw.get("unit") or None
            mcq.explanation = raw.get("explanation") or None
        return mcq

    starter_code = raw.get("starterCode")
    if has_starter_code(starter_code):
        return CodingQuestion(
            **common,
            starter_code=starter_code,
            test_cases=normalize_test_cases(raw.get("testCases")),
        )

    return UnclassifiedQuestion(**common)


def classify_questions(
    raws: Iterable[Mapping[str, Any]], default_difficulty: str | None = None
) -> list[Question]:
    """Classify a full question list; positions follow list order."""
    return [
        classify_question(raw, position, default_difficulty)
        for position, raw in enumerate(raws, start=1)
    ]
