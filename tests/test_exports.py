import json

from assessment_catalog.utils.exports import (
    ASSESSMENT_COLUMNS,
    assessments_to_frame,
    batches_to_frame,
    make_json_export_payload,
    questions_to_frame,
)


def test_assessments_frame(service, make_mcq):
    service.create({"title": "A", "questions": [make_mcq()]}, "f@example.edu")
    service.create({"title": "B", "department": "Civil"}, "f@example.edu")

    df = assessments_to_frame(service.list().items)

    assert list(df.columns) == ASSESSMENT_COLUMNS
    assert df["AssessmentID"].tolist() == ["ASSESS_CE_001", "ASSESS_GEN_001"]
    assert df["Category"].tolist() == ["Civil", None]
    assert df["Batches"].tolist() == [0, 1]
    assert df["WriteState"].unique().tolist() == ["COMMITTED"]


def test_empty_frames_keep_columns():
    assert assessments_to_frame([]).empty
    assert list(batches_to_frame([]).columns) == ["PK", "SK", "EntityType", "QuestionCount"]


def test_batches_frame_sorted_by_key(service, make_mcq, make_coding):
    created = service.create(
        {"title": "T", "questions": [make_coding()] + [make_mcq()] * 3}, "f@example.edu"
    )

    df = batches_to_frame(service.batch_records(created["assessmentId"]))

    assert df["PK"].tolist() == [
        "ASSESSMENT#ASSESS_GEN_001#CODING_BATCH_1",
        "ASSESSMENT#ASSESS_GEN_001#MCQ_BATCH_1",
    ]
    assert df["EntityType"].tolist() == ["coding_batch_1", "mcq_batch_1"]
    assert df["QuestionCount"].tolist() == [1, 3]


def test_json_export(service, make_mcq):
    created = service.create(
        {"title": "T", "questions": [make_mcq(), {"text": "essay"}, make_mcq("2nd")]},
        "f@example.edu",
    )
    report = service.verify(created["assessmentId"])

    payload = json.loads(make_json_export_payload(created, report.to_dict()))

    assert "questions" not in payload["assessment"]
    assert [row["QuestionID"] for row in payload["summary"]] == ["Q_001", "Q_003"]
    assert payload["summary"][0]["Kind"] == "mcq"
    assert payload["consistency"]["isConsistent"] is True
    assert questions_to_frame(created["questions"])["Number"].tolist() == [1, 3]


def test_json_export_without_report():
    payload = json.loads(make_json_export_payload({"assessmentId": "X", "questions": []}))

    assert payload == {"assessment": {"assessmentId": "X"}, "summary": [], "questions": []}
