import re

import pytest

from assessment_catalog.domain.batching import generate_entities
from assessment_catalog.domain.services import CatalogService, format_timestamp
from assessment_catalog.infrastructure.config import CatalogConfig
from assessment_catalog.infrastructure.exceptions import (
    AllocationExhaustedError,
    AssessmentNotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)
from assessment_catalog.infrastructure.keys import BATCH_MARKER
from assessment_catalog.infrastructure.repositories import AssessmentRepo, QuestionBatchRepo

CREATOR = "faculty@example.edu"


def new_assessment(title="Java basics", category="Information Technology", questions=(), **extra):
    return {"title": title, "category": category, "questions": list(questions), **extra}


def stored_batches(SessionLocal, assessment_id, scope="example.edu"):
    with SessionLocal() as s:
        return QuestionBatchRepo(s).list_batches(assessment_id, scope)


class TestCreate:
    def test_identifiers_are_sequential_per_category_and_scope(self, service):
        first = service.create(new_assessment(), CREATOR)
        second = service.create(new_assessment(), CREATOR)
        other_scope = service.create(new_assessment(), "someone@other.edu")
        other_category = service.create(new_assessment(category="Civil"), CREATOR)

        assert re.fullmatch(r"ASSESS_IT_\d{3}", first["assessmentId"])
        assert first["assessmentId"] == "ASSESS_IT_001"
        assert second["assessmentId"] == "ASSESS_IT_002"
        assert other_scope["assessmentId"] == "ASSESS_IT_001"
        assert other_category["assessmentId"] == "ASSESS_CE_001"

    def test_header_fields(self, service, make_mcq):
        created = service.create(
            new_assessment(questions=[make_mcq(), make_mcq()], difficulty="hard"), CREATOR
        )

        assert created["scope"] == "example.edu"
        assert created["categoryCode"] == "IT"
        assert created["kind"] == "DEPARTMENT_WISE"
        assert created["difficulty"] == "HARD"
        assert created["tags"] == ["MCQ"]
        assert created["status"] == "ACTIVE"
        assert created["isPublished"] is False
        assert created["writeState"] == "COMMITTED"
        assert created["createdBy"] == created["createdByName"] == CREATOR
        assert created["createdAt"] == "2024-05-01T10:00:00.000Z"
        assert created["stats"] == {
            "avgScore": 0,
            "completed": 0,
            "highestScore": 0,
            "totalParticipants": 0,
        }
        assert created["configuration"]["totalQuestions"] == 2
        assert created["configuration"]["duration"] == 60
        assert created["scheduling"]["timezone"] == "Asia/Kolkata"
        assert created["target"] == {"groups": [], "cohorts": []}

    def test_creator_without_domain_uses_default_scope(self, service):
        assert service.create(new_assessment(), "admin")["scope"] == "default"

    def test_questions_round_trip_through_fetch(self, service, make_mcq, make_coding):
        raws = [make_coding(), make_mcq(subcategory="arrays"), make_mcq(), make_coding()]
        created = service.create(new_assessment(questions=raws), CREATOR)
        fetched = service.fetch(created["assessmentId"])

        assert fetched == created
        assert [q["questionNumber"] for q in fetched["questions"]] == [1, 2, 3, 4]
        assert [q["kind"] for q in fetched["questions"]] == ["coding", "mcq", "mcq", "coding"]

    def test_large_assessment_is_batched(self, service, SessionLocal, make_mcq, make_coding):
        raws = [make_mcq(text=f"m{i}") for i in range(120)] + [make_coding(), make_coding()]
        created = service.create(new_assessment(questions=raws), CREATOR)

        batches = stored_batches(SessionLocal, created["assessmentId"])
        sizes = {b.label: len(b) for b in batches}
        assert sizes == {
            "mcq_batch_1": 50,
            "mcq_batch_2": 50,
            "mcq_batch_3": 20,
            "coding_batch_1": 2,
        }
        assert [e.to_item() for e in generate_entities(batches)] == created["entities"]
        assert [e["batch"] for e in created["entities"]] == [
            "mcq_batch_1",
            "mcq_batch_2",
            "mcq_batch_3",
            "programming_batch_1",
        ]

    def test_unclassified_questions_are_not_stored(self, service, make_mcq):
        created = service.create(new_assessment(questions=[{"text": "?"}, make_mcq()]), CREATOR)

        assert [q["questionId"] for q in created["questions"]] == ["Q_002"]
        assert created["configuration"]["totalQuestions"] == 2
        fetched = service.fetch(created["assessmentId"])
        assert [q["questionId"] for q in fetched["questions"]] == ["Q_002"]

    def test_no_questions_no_batches(self, service, SessionLocal):
        created = service.create(new_assessment(), CREATOR)

        assert created["entities"] == []
        assert created["questions"] == []
        assert stored_batches(SessionLocal, created["assessmentId"]) == []

    def test_conditional_write_skips_id_claimed_concurrently(self, service):
        original = service.create(new_assessment(title="original"), CREATOR)
        # simulate a writer that claimed 001 after our existence check
        service.header_exists = lambda assessment_id, scope: False
        service.scan_category_ids = lambda code, scope: []

        racer = service.create(new_assessment(title="racer"), CREATOR)

        assert racer["assessmentId"] == "ASSESS_IT_002"
        assert service.fetch(original["assessmentId"])["title"] == "original"

    def test_allocation_exhaustion(self, SessionLocal, clock):
        service = CatalogService(
            SessionLocal, config=CatalogConfig(max_identifier_attempts=3), clock=clock
        )
        service.header_exists = lambda assessment_id, scope: True

        with pytest.raises(AllocationExhaustedError) as exc_info:
            service.create(new_assessment(), CREATOR)
        assert exc_info.value.attempts == 3


class TestFetchAndList:
    def test_fetch_missing_returns_none(self, service):
        assert service.fetch("ASSESS_IT_999") is None

    def test_list_never_returns_batch_records(self, service, SessionLocal, make_mcq):
        created = service.create(new_assessment(questions=[make_mcq()] * 120), CREATOR)
        with SessionLocal() as s:
            # a batch-keyed record that ended up in the header table
            AssessmentRepo(s).put_item(
                {
                    "PK": f"ASSESSMENT#{created['assessmentId']}#MCQ_BATCH_9",
                    "SK": "CLIENT#example.edu",
                }
            )
            s.commit()

        page = service.list()

        assert [h["assessmentId"] for h in page.items] == [created["assessmentId"]]
        assert all(BATCH_MARKER not in h["assessmentId"] for h in page.items)
        assert "questions" not in page.items[0]
        assert page.has_more is False
        assert page.continuation_token is None

    def test_pagination_covers_every_header_once(self, service):
        for i in range(5):
            service.create(new_assessment(title=f"t{i}"), CREATOR)

        seen, token, pages = [], None, 0
        while True:
            page = service.list(page_size=2, continuation_token=token)
            seen.extend(h["assessmentId"] for h in page.items)
            pages += 1
            if not page.has_more:
                break
            token = page.continuation_token

        assert pages == 3
        assert sorted(seen) == [f"ASSESS_IT_00{i}" for i in range(1, 6)]
        assert len(set(seen)) == 5

    def test_filters(self, service):
        service.create(new_assessment(isPublished=True), CREATOR)
        service.create(new_assessment(category="Civil", difficulty="easy"), CREATOR)
        service.create(new_assessment(), "someone@other.edu")

        def ids(**filters):
            return sorted(h["assessmentId"] for h in service.list(filters).items)

        assert ids(scope="other.edu") == ["ASSESS_IT_001"]
        assert ids(categoryCode="CE") == ["ASSESS_CE_001"]
        assert ids(isPublished=True) == ["ASSESS_IT_001"]
        assert ids(difficulty="EASY", scope="example.edu") == ["ASSESS_CE_001"]
        assert ids(createdBy="nobody") == []

    def test_bad_paging_input(self, service):
        with pytest.raises(ValidationError):
            service.list(page_size=5000)
        with pytest.raises(ValidationError):
            service.list(continuation_token="garbage")


class TestUpdate:
    def test_partial_update_keeps_questions(self, service, make_mcq):
        created = service.create(new_assessment(questions=[make_mcq()]), CREATOR)

        updated = service.update(
            created["assessmentId"],
            {"title": "Renamed", "status": "draft", "assessmentId": "HIJACK", "createdAt": "x"},
            "editor@example.edu",
        )

        assert updated["title"] == "Renamed"
        assert updated["status"] == "DRAFT"
        assert updated["assessmentId"] == created["assessmentId"]
        assert updated["createdAt"] == created["createdAt"]
        assert updated["updatedBy"] == "editor@example.edu"
        assert updated["updatedAt"] != created["updatedAt"]
        assert updated["questions"] == created["questions"]
        assert service.fetch(created["assessmentId"])["title"] == "Renamed"

    def test_nested_objects_merge_one_level(self, service):
        created = service.create(
            new_assessment(
                scheduling={"startDate": "2024-05-01", "timezone": "Asia/Kolkata"},
                target={"groups": ["IT"], "cohorts": [3]},
            ),
            CREATOR,
        )

        updated = service.update(
            created["assessmentId"],
            {"scheduling": {"endDate": "2024-06-01"}, "target": {"cohorts": [4]}},
        )

        assert updated["scheduling"] == {
            "startDate": "2024-05-01",
            "timezone": "Asia/Kolkata",
            "endDate": "2024-06-01",
        }
        assert updated["target"] == {"groups": ["IT"], "cohorts": [4]}
        assert updated["configuration"] == created["configuration"]

    def test_empty_question_list_removes_every_batch(self, service, SessionLocal, make_mcq):
        created = service.create(new_assessment(questions=[make_mcq()] * 120), CREATOR)
        assert len(stored_batches(SessionLocal, created["assessmentId"])) == 3

        updated = service.update(created["assessmentId"], {"questions": []})

        assert updated["entities"] == []
        assert updated["questions"] == []
        assert stored_batches(SessionLocal, created["assessmentId"]) == []
        assert service.fetch(created["assessmentId"])["entities"] == []

    def test_questions_are_replaced_not_merged(self, service, SessionLocal, make_mcq, make_coding):
        created = service.create(
            new_assessment(questions=[make_mcq(text=f"old {i}") for i in range(60)]), CREATOR
        )

        updated = service.update(created["assessmentId"], {"questions": [make_coding(text="new")]})

        assert [q["question"] for q in updated["questions"]] == ["new"]
        assert updated["questions"][0]["questionId"] == "Q_001"
        assert updated["writeState"] == "COMMITTED"
        batches = stored_batches(SessionLocal, created["assessmentId"])
        assert [b.label for b in batches] == ["coding_batch_1"]
        assert [e.to_item() for e in generate_entities(batches)] == updated["entities"]

    def test_update_missing(self, service):
        with pytest.raises(AssessmentNotFoundError):
            service.update("ASSESS_IT_404", {"title": "x"})


class TestDelete:
    def test_delete_removes_header_and_batches(self, service, SessionLocal, make_mcq):
        created = service.create(new_assessment(questions=[make_mcq()] * 75), CREATOR)

        result = service.delete(created["assessmentId"])

        assert result["deletedBatches"] == 2
        assert service.fetch(created["assessmentId"]) is None
        assert stored_batches(SessionLocal, created["assessmentId"]) == []

    def test_delete_missing(self, service):
        with pytest.raises(AssessmentNotFoundError):
            service.delete("ASSESS_IT_404")


class TestConsistency:
    def _fail_second_batch_write(self, monkeypatch):
        original = QuestionBatchRepo.put_batch
        calls = []

        def flaky(self, *args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise StoreError("disk full", "put_item")
            return original(self, *args, **kwargs)

        monkeypatch.setattr(QuestionBatchRepo, "put_batch", flaky)

    def test_committed_assessment_verifies_clean(self, service, make_mcq):
        created = service.create(new_assessment(questions=[make_mcq()] * 3), CREATOR)
        report = service.verify(created["assessmentId"])

        assert report.is_consistent
        assert report.batch_labels == ["mcq_batch_1"]

    def test_interrupted_create_is_detected_and_repaired(self, service, monkeypatch, make_mcq):
        self._fail_second_batch_write(monkeypatch)

        with pytest.raises(StoreError) as exc_info:
            service.create(new_assessment(questions=[make_mcq()] * 120), CREATOR)
        assert exc_info.value.details["catalog_operation"] == "create"
        assert exc_info.value.details["assessment_id"] == "ASSESS_IT_001"
        monkeypatch.undo()

        report = service.verify("ASSESS_IT_001")
        assert not report.is_consistent
        assert report.write_state == "PENDING"
        assert "Stored entities do not match the persisted batches" in report.issues

        repaired = service.repair("ASSESS_IT_001")
        assert repaired.is_consistent
        fetched = service.fetch("ASSESS_IT_001")
        assert fetched["writeState"] == "COMMITTED"
        assert [e["batch"] for e in fetched["entities"]] == ["mcq_batch_1"]
        assert len(fetched["questions"]) == 50

    def test_verify_missing(self, service):
        with pytest.raises(AssessmentNotFoundError):
            service.verify("ASSESS_IT_404")


def test_store_failures_carry_operation_and_id(service, monkeypatch):
    def unavailable(self, assessment_id):
        raise StoreUnavailableError("connection refused")

    monkeypatch.setattr(AssessmentRepo, "find_header", unavailable)

    with pytest.raises(StoreUnavailableError) as exc_info:
        service.fetch("ASSESS_IT_001")

    assert exc_info.value.details["catalog_operation"] == "fetch"
    assert exc_info.value.details["assessment_id"] == "ASSESS_IT_001"


def test_timestamps_are_utc_milliseconds():
    from datetime import datetime, timedelta, timezone

    ist = timezone(timedelta(hours=5, minutes=30))
    moment = datetime(2024, 5, 1, 15, 30, 0, 123456, tzinfo=ist)
    assert format_timestamp(moment) == "2024-05-01T10:00:00.123Z"
