"""
Record store repositories for the assessment catalog.

Re-exports the key-value repositories so callers can import them from one
place:
    from assessment_catalog.infrastructure.repositories import AssessmentRepo, ...
"""

from __future__ import annotations

from .repositories_assessment import AssessmentRepo
from .repositories_base import (
    KeyValueRepository,
    ScanCondition,
    ScanPage,
    decode_continuation_token,
    encode_continuation_token,
)
from .repositories_batch import QuestionBatchRepo, batch_from_item

__all__ = [
    "AssessmentRepo",
    "QuestionBatchRepo",
    "KeyValueRepository",
    "ScanCondition",
    "ScanPage",
    "batch_from_item",
    "decode_continuation_token",
    "encode_continuation_token",
]
