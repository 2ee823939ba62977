# assessment_catalog/infrastructure/repositories_batch.py
from __future__ import annotations

import builtins

from sqlalchemy.orm import Session

from ..domain.classifier import classify_question
from ..domain.models import QuestionBatch
from .keys import batch_pk, batch_pk_prefix, parse_batch_pk, scope_sk
from .logging import get_logger
from .models import QuestionBatchRecordORM
from .repositories_base import Item, KeyValueRepository, ScanCondition

logger = get_logger(__name__)


def batch_from_item(item: Item) -> QuestionBatch | None:
    """Rebuild a QuestionBatch from a stored record; None for keys that are not batch keys."""
    parsed = parse_batch_pk(item["PK"])
    if parsed is None:
        return None
    _, kind, index = parsed
    questions = [
        classify_question(raw, int(raw.get("questionNumber") or position))
        for position, raw in enumerate(item.get("questions") or [], start=1)
    ]
    return QuestionBatch(kind=kind, index=index, questions=questions)


class QuestionBatchRepo(KeyValueRepository[QuestionBatchRecordORM]):
    """Batch records keyed (ASSESSMENT#<id>#<KIND>_BATCH_<n>, CLIENT#<scope>)."""

    model = QuestionBatchRecordORM

    def __init__(self, session: Session, scan_chunk_size: int = 100):
        super().__init__(session, scan_chunk_size)

    def _condition(self, assessment_id: str, scope: str) -> ScanCondition:
        return ScanCondition(pk_prefix=batch_pk_prefix(assessment_id), sk_equals=scope_sk(scope))

    # -------- Read --------

    def list_batch_items(self, assessment_id: str, scope: str) -> builtins.list[Item]:
        return self.scan_all(self._condition(assessment_id, scope))

    def list_batches(self, assessment_id: str, scope: str) -> builtins.list[QuestionBatch]:
        batches = []
        for item in self.list_batch_items(assessment_id, scope):
            batch = batch_from_item(item)
            if batch is None:
                logger.warning(f"Skipping record with unrecognised batch key {item['PK']}")
                continue
            batches.append(batch)
        return batches

    # -------- Write --------

    def put_batch(
        self, assessment_id: str, scope: str, category: str | None, batch: QuestionBatch
    ) -> Item:
        item = {
            "PK": batch_pk(assessment_id, batch.kind, batch.index),
            "SK": scope_sk(scope),
            "assessmentId": assessment_id,
            "scope": scope,
            "category": category,
            "entityType": batch.label,
            "questions": [question.to_item() for question in batch.questions],
        }
        return self.put_item(item)

    def delete_all_batches(self, assessment_id: str, scope: str) -> int:
        deleted = 0
        for item in self.list_batch_items(assessment_id, scope):
            if self.delete_item(item["PK"], item["SK"]):
                deleted += 1
        return deleted
