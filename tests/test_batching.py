import math

import pytest

from assessment_catalog.domain.batching import (
    find_batch_issues,
    generate_entities,
    pack_questions,
    unpack_batches,
)
from assessment_catalog.domain.classifier import classify_questions
from assessment_catalog.domain.models import QuestionBatch, QuestionKind


def mcqs(n, subcategory="technical"):
    return [
        {"text": f"mcq {i}", "options": ["a", "b"], "subcategory": subcategory}
        for i in range(n)
    ]


def codings(n):
    return [{"text": f"code {i}", "starterCode": "pass"} for i in range(n)]


def test_no_questions_no_batches_no_entities():
    assert pack_questions([]) == []
    assert generate_entities([]) == []


@pytest.mark.parametrize("n", [1, 49, 50, 51, 120])
def test_batch_capacity(n):
    batches = pack_questions(classify_questions(mcqs(n)))

    assert len(batches) == math.ceil(n / 50)
    assert all(len(b) == 50 for b in batches[:-1])
    assert 1 <= len(batches[-1]) <= 50
    assert [b.index for b in batches] == list(range(1, len(batches) + 1))


def test_custom_capacity():
    batches = pack_questions(classify_questions(mcqs(7)), capacity=3)
    assert [len(b) for b in batches] == [3, 3, 1]


def test_kinds_are_packed_separately_mcq_first():
    raws = codings(2) + mcqs(3) + [{"text": "neither"}]
    batches = pack_questions(classify_questions(raws))

    assert [b.label for b in batches] == ["mcq_batch_1", "coding_batch_1"]
    assert [q.question_number for q in batches[0].questions] == [3, 4, 5]
    assert [q.question_number for q in batches[1].questions] == [1, 2]


def test_unpack_restores_question_order():
    raws = []
    for i in range(60):
        raws.extend(mcqs(1) if i % 3 else codings(1))
    questions = classify_questions(raws)
    classified = [q for q in questions if q.kind is not None]

    restored = unpack_batches(pack_questions(questions, capacity=7))

    assert [q.question_number for q in restored] == list(range(1, 61))
    assert [q.to_item() for q in restored] == [q.to_item() for q in classified]


def test_entities_share_global_subcategories():
    raws = mcqs(50, "arrays") + mcqs(10, "oop") + mcqs(5, "arrays") + codings(120)
    entities = generate_entities(pack_questions(classify_questions(raws)))

    assert [e.to_item() for e in entities] == [
        {"type": "MCQ", "subcategories": ["arrays", "oop"], "batch": "mcq_batch_1"},
        {"type": "MCQ", "subcategories": ["arrays", "oop"], "batch": "mcq_batch_2"},
        {"type": "Coding", "description": "Programming questions", "batch": "programming_batch_1"},
    ]


def test_coding_only_entities():
    entities = generate_entities(pack_questions(classify_questions(codings(3))))
    assert [e.type for e in entities] == ["Coding"]


class TestBatchIssues:
    def _batch(self, index, n, kind=QuestionKind.MCQ):
        questions = [q for q in classify_questions(mcqs(n)) if q.kind is kind]
        return QuestionBatch(kind=kind, index=index, questions=questions)

    def test_well_formed_set_has_no_issues(self):
        assert find_batch_issues(pack_questions(classify_questions(mcqs(120))), 50) == []

    def test_gap_in_indices(self):
        issues = find_batch_issues([self._batch(1, 50), self._batch(3, 10)], 50)
        assert any("not contiguous" in issue for issue in issues)

    def test_empty_and_partial_middle_batches(self):
        issues = find_batch_issues([self._batch(1, 0), self._batch(2, 10), self._batch(3, 5)], 50)
        assert "mcq_batch_1 is empty" in issues
        assert any("mcq_batch_2 is partially filled" in issue for issue in issues)

    def test_overfull_batch(self):
        issues = find_batch_issues([self._batch(1, 60)], 50)
        assert issues == ["mcq_batch_1 holds 60 questions (capacity 50)"]
