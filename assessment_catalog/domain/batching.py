"""
Batch packing and unpacking.

Questions are stored in fixed-capacity batch records, one kind per batch.
The entities summary attached to the assessment header is always derived
from a batch set, never from a separate pass over the input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from .models import Entity, Question, QuestionBatch, QuestionKind

T = TypeVar("T")

BATCH_CAPACITY = 50
PACKED_KINDS = (QuestionKind.MCQ, QuestionKind.CODING)
CODING_ENTITY_BATCH = "programming_batch_1"
CODING_ENTITY_DESCRIPTION = "Programming questions"


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("Batch capacity must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def pack_questions(
    questions: Iterable[Question], capacity: int = BATCH_CAPACITY
) -> list[QuestionBatch]:
    """
    Split questions into per-kind batches of at most ``capacity``.

    Kinds are packed independently and keep their relative order; MCQ
    batches come first. Unclassified questions have no batch kind and are
    skipped.
    """
    questions = list(questions)
    batches: list[QuestionBatch] = []
    for kind in PACKED_KINDS:
        of_kind = [q for q in questions if q.kind is kind]
        for index, chunk in enumerate(chunked(of_kind, capacity), start=1):
            batches.append(QuestionBatch(kind=kind, index=index, questions=chunk))
    return batches


def unpack_batches(batches: Iterable[QuestionBatch]) -> list[Question]:
    """Concatenate batch contents and restore ``questionNumber`` order."""
    questions: list[Question] = []
    for batch in batches:
        questions.extend(batch.questions)
    return sorted(questions, key=lambda q: q.question_number)


def sort_batches(batches: Iterable[QuestionBatch]) -> list[QuestionBatch]:
    order = {kind: position for position, kind in enumerate(PACKED_KINDS)}
    return sorted(batches, key=lambda b: (order[b.kind], b.index))


def generate_entities(batches: Iterable[QuestionBatch]) -> list[Entity]:
    """
    Derive the entities summary from a batch set.

    One MCQ entity per MCQ batch, all carrying the subcategories of every MCQ
    question (first appearance in question order). All coding batches share a
    single generic entity.
    """
    ordered = sort_batches(batches)
    mcq_batches = [b for b in ordered if b.kind is QuestionKind.MCQ and b.questions]
    coding_batches = [b for b in ordered if b.kind is QuestionKind.CODING and b.questions]

    subcategories: list[str] = []
    for question in unpack_batches(mcq_batches):
        if question.subcategory not in subcategories:
            subcategories.append(question.subcategory)

    entities = [
        Entity(type="MCQ", subcategories=list(subcategories), batch=batch.label)
        for batch in mcq_batches
    ]
    if coding_batches:
        entities.append(
            Entity(
                type="Coding",
                description=CODING_ENTITY_DESCRIPTION,
                batch=CODING_ENTITY_BATCH,
            )
        )
    return entities


def find_batch_issues(batches: Iterable[QuestionBatch], capacity: int) -> list[str]:
    """Report batch sets that break contiguity, capacity or non-emptiness."""
    issues: list[str] = []
    ordered = sort_batches(batches)
    for kind in PACKED_KINDS:
        of_kind = [b for b in ordered if b.kind is kind]
        indices = [b.index for b in of_kind]
        if indices != list(range(1, len(indices) + 1)):
            issues.append(f"{kind.value} batch indices are not contiguous from 1: {indices}")
        for position, batch in enumerate(of_kind, start=1):
            if not batch.questions:
                issues.append(f"{batch.label} is empty")
            elif len(batch) > capacity:
                issues.append(f"{batch.label} holds {len(batch)} questions (capacity {capacity})")
            elif position < len(of_kind) and len(batch) < capacity:
                issues.append(f"{batch.label} is partially filled but is not the last batch")
    return issues
