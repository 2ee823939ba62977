import pytest

from assessment_catalog.domain.classifier import (
    classify_question,
    classify_questions,
    format_question_id,
    option_letter,
)
from assessment_catalog.domain.models import (
    CodingQuestion,
    MultipleChoiceQuestion,
    QuestionKind,
    UnclassifiedQuestion,
)


def test_option_letters():
    assert [option_letter(i) for i in range(3)] == ["A", "B", "C"]
    assert option_letter(25) == "Z"
    assert option_letter(26) == "AA"
    assert option_letter(27) == "AB"


def test_question_ids_are_zero_padded():
    assert format_question_id(7) == "Q_007"
    assert format_question_id(1234) == "Q_1234"


class TestMultipleChoice:
    def test_string_options_get_letters(self):
        q = classify_question({"text": "Pick one", "options": ["red", "blue"]}, 1)

        assert isinstance(q, MultipleChoiceQuestion)
        assert q.kind is QuestionKind.MCQ
        assert [(o.id, o.text) for o in q.options] == [("A", "red"), ("B", "blue")]

    def test_dict_options_keep_ids_and_drop_extra_keys(self):
        raw = {
            "question": "Pick one",
            "options": [{"id": "x", "text": "red", "isCorrect": True}, {"text": "blue"}],
        }
        q = classify_question(raw, 3)

        assert [o.to_item() for o in q.options] == [
            {"id": "x", "text": "red"},
            {"id": "B", "text": "blue"},
        ]
        assert q.question == "Pick one"

    def test_whitespace_only_option_is_unclassified(self):
        q = classify_question({"text": "Blank", "options": [{"text": "  "}]}, 1)

        assert isinstance(q, UnclassifiedQuestion)
        assert "kind" not in q.to_item()

    def test_options_win_over_starter_code(self):
        raw = {"text": "Both", "options": ["a"], "starterCode": "print(1)"}
        assert isinstance(classify_question(raw, 1), MultipleChoiceQuestion)

    @pytest.mark.parametrize(
        ("given", "expected"),
        [("B", ["B"]), (["A", "C"], ["A", "C"]), (None, [])],
    )
    def test_correct_answer_is_a_list(self, given, expected):
        raw = {"text": "Q", "options": ["a", "b", "c"]}
        if given is not None:
            raw["correctAnswer"] = given
        assert classify_question(raw, 1).correct_answer == expected

    def test_numeric_answer_fields(self):
        raw = {
            "text": "Resistance?",
            "options": ["10", "20"],
            "answerType": "numeric",
            "correctAnswers": 20,
            "range": {"min": 19, "max": 21},
            "unit": "ohm",
        }
        item = classify_question(raw, 1).to_item()

        assert item["answerType"] == "numeric"
        assert item["correctAnswers"] == [20]
        assert item["range"] == {"min": 19, "max": 21}
        assert item["unit"] == "ohm"
        assert "explanation" not in item

    def test_numeric_fields_ignored_without_answer_type(self):
        item = classify_question({"text": "Q", "options": ["a"], "unit": "kg"}, 1).to_item()
        assert "unit" not in item
        assert "answerType" not in item


class TestCoding:
    def test_starter_code_makes_coding_question(self):
        raw = {
            "text": "Sum",
            "starterCode": "def add(a, b):\n    pass",
            "testCases": [
                {"input": "1 2", "expectedOutput": "3"},
                {"inputs": {"a": 1, "b": 2}, "expectedOutput": "3"},
            ],
        }
        q = classify_question(raw, 2)

        assert isinstance(q, CodingQuestion)
        assert q.to_item()["testCases"] == [
            {"inputs": {"input": "1 2"}, "expectedOutput": "3"},
            {"inputs": {"a": 1, "b": 2}, "expectedOutput": "3"},
        ]

    def test_blank_starter_code_is_unclassified(self):
        question = classify_question({"text": "Q", "starterCode": "   "}, 1)
        assert isinstance(question, UnclassifiedQuestion)


class TestCommonFields:
    def test_marks_take_precedence_over_points(self):
        both = {"text": "Q", "options": ["a"], "marks": 4, "points": 2}
        assert classify_question(both, 1).points == 4
        assert classify_question({"text": "Q", "options": ["a"], "points": 2}, 1).points == 2
        assert classify_question({"text": "Q", "options": ["a"]}, 1).points == 1

    def test_difficulty_falls_back_to_assessment_then_medium(self):
        own = classify_question({"text": "Q", "options": ["a"], "difficulty": "hard"}, 1, "EASY")
        inherited = classify_question({"text": "Q", "options": ["a"]}, 1, "easy")
        default = classify_question({"text": "Q", "options": ["a"]}, 1)

        assert own.difficulty == "HARD"
        assert inherited.difficulty == "EASY"
        assert default.difficulty == "MEDIUM"

    def test_subcategory_defaults_to_technical(self):
        assert classify_question({"text": "Q", "options": ["a"]}, 1).subcategory == "technical"

    def test_position_must_be_positive(self):
        with pytest.raises(ValueError):
            classify_question({"text": "Q"}, 0)

    def test_positions_follow_list_order(self):
        questions = classify_questions([{"text": "a", "options": ["x"]}, {"text": "b"}])
        assert [q.question_id for q in questions] == ["Q_001", "Q_002"]
        assert [q.question_number for q in questions] == [1, 2]


class TestDeterminism:
    RAWS = [
        {
            "text": "Pick",
            "options": ["a", {"text": "b"}],
            "correctAnswer": "A",
            "subcategory": "oop",
        },
        {
            "text": "Code",
            "starterCode": "x = 1",
            "testCases": [{"input": "1", "expectedOutput": "1"}],
        },
        {
            "text": "Numeric",
            "options": ["1"],
            "answerType": "numeric",
            "correctAnswers": [1],
            "explanation": "because",
            "difficulty": "easy",
        },
        {"text": "Nothing here"},
    ]

    @pytest.mark.parametrize("raw", RAWS)
    def test_same_payload_classifies_identically(self, raw):
        assert classify_question(raw, 5, "HARD") == classify_question(raw, 5, "HARD")

    @pytest.mark.parametrize("raw", RAWS)
    def test_classifying_stored_item_is_idempotent(self, raw):
        q = classify_question(raw, 9, "HARD")
        again = classify_question(q.to_item(), q.question_number)

        assert again == q
        assert again.to_item() == q.to_item()
