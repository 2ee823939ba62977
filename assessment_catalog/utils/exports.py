from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

ASSESSMENT_COLUMNS = [
    "AssessmentID",
    "Title",
    "Category",
    "CategoryCode",
    "Scope",
    "Difficulty",
    "Status",
    "Published",
    "WriteState",
    "Batches",
    "CreatedBy",
    "CreatedAt",
]
BATCH_COLUMNS = ["PK", "SK", "EntityType", "QuestionCount"]
QUESTION_COLUMNS = [
    "QuestionID",
    "Number",
    "Kind",
    "Difficulty",
    "Points",
    "Subcategory",
    "Question",
]


def _to_iso(val):
    if hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except Exception:
            return str(val)
    return val


def assessments_to_frame(headers: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """One row per assessment header, in the given order."""
    rows = [
        {
            "AssessmentID": h.get("assessmentId"),
            "Title": h.get("title"),
            "Category": h.get("category") or h.get("department"),
            "CategoryCode": h.get("categoryCode"),
            "Scope": h.get("scope"),
            "Difficulty": h.get("difficulty"),
            "Status": h.get("status"),
            "Published": bool(h.get("isPublished", False)),
            "WriteState": h.get("writeState"),
            "Batches": len(h.get("entities") or []),
            "CreatedBy": h.get("createdBy"),
            "CreatedAt": h.get("createdAt"),
        }
        for h in headers
    ]
    return pd.DataFrame(rows, columns=ASSESSMENT_COLUMNS)


def batches_to_frame(batch_items: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Raw batch records (with keys) as stored, sorted by key."""
    rows = [
        {
            "PK": item.get("PK"),
            "SK": item.get("SK"),
            "EntityType": item.get("entityType"),
            "QuestionCount": len(item.get("questions") or []),
        }
        for item in batch_items
    ]
    df = pd.DataFrame(rows, columns=BATCH_COLUMNS)
    return df.sort_values(["PK", "SK"], ignore_index=True) if not df.empty else df


def questions_to_frame(questions: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "QuestionID": q.get("questionId"),
            "Number": q.get("questionNumber"),
            "Kind": q.get("kind") or "unclassified",
            "Difficulty": q.get("difficulty"),
            "Points": q.get("points"),
            "Subcategory": q.get("subcategory"),
            "Question": q.get("question"),
        }
        for q in questions
    ]
    return pd.DataFrame(rows, columns=QUESTION_COLUMNS)


def make_json_export_payload(
    assessment: Mapping[str, Any], report: Mapping[str, Any] | None = None
) -> str:
    """
    JSON document with the header, its questions and an optional consistency report.

    The question table is rebuilt through pandas so the summary columns match
    what ``questions_to_frame`` shows on screen.
    """
    header = {k: v for k, v in assessment.items() if k != "questions"}
    questions = list(assessment.get("questions") or [])
    summary = questions_to_frame(questions)
    summary = summary.astype(object).where(summary.notna(), None)
    payload = {
        "assessment": header,
        "summary": summary.map(_to_iso).to_dict(orient="records"),
        "questions": questions,
    }
    if report is not None:
        payload["consistency"] = dict(report)
    return json.dumps(payload, indent=2, default=_to_iso)
