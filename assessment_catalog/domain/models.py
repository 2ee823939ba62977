from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar


class QuestionKind(str, enum.Enum):
    """Storage kinds; each kind is batched independently."""

    MCQ = "mcq"
    CODING = "coding"

    @property
    def key_token(self) -> str:
        return self.value.upper()

    @classmethod
    def from_key_token(cls, token: str) -> QuestionKind:
        return cls(token.lower())


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class AssessmentStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class WriteState(str, enum.Enum):
    """Header marker for the header-then-batches write protocol."""

    PENDING = "PENDING"
    COMMITTED = "COMMITTED"


ASSESSMENT_KIND = "DEPARTMENT_WISE"
DEFAULT_SUBCATEGORY = "technical"
DEFAULT_TAGS = ("MCQ",)


@dataclass(slots=True)
class Option:
    id: str
    text: str

    def to_item(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text}


@dataclass(slots=True)
class CodingTestCase:
    inputs: dict[str, Any]
    expected_output: Any

    def to_item(self) -> dict[str, Any]:
        return {"inputs": self.inputs, "expectedOutput": self.expected_output}


@dataclass(slots=True)
class QuestionBase:
    question_id: str
    question_number: int
    question: str
    points: int | float = 1
    difficulty: str = Difficulty.MEDIUM.value
    subcategory: str = DEFAULT_SUBCATEGORY

    kind: ClassVar[QuestionKind | None] = None

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "questionId": self.question_id,
            "questionNumber": self.question_number,
            "question": self.question,
            "points": self.points,
            "difficulty": self.difficulty,
            "subcategory": self.subcategory,
        }
        if self.kind is not None:
            item["kind"] = self.kind.value
        item.update(self._kind_fields())
        return item

    def _kind_fields(self) -> dict[str, Any]:
        return {}


@dataclass(slots=True)
class UnclassifiedQuestion(QuestionBase):
    """Has neither options nor starter code; never batched, so never stored or returned."""


@dataclass(slots=True)
class MultipleChoiceQuestion(QuestionBase):
    options: list[Option] = field(default_factory=list)
    correct_answer: list[Any] = field(default_factory=list)
    answer_type: str | None = None
    correct_answers: list[Any] = field(default_factory=list)
    answer_range: Any = None
    unit: str | None = None
    explanation: str | None = None

    kind: ClassVar[QuestionKind | None] = QuestionKind.MCQ

    @property
    def is_numeric(self) -> bool:
        return self.answer_type == "numeric"

    def _kind_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "options": [option.to_item() for option in self.options],
            "correctAnswer": list(self.correct_answer),
        }
        if self.is_numeric:
            fields["answerType"] = "numeric"
            fields["correctAnswers"] = list(self.correct_answers)
            if self.answer_range:
                fields["range"] = self.answer_range
            if self.unit:
                fields["unit"] = self.unit
            if self.explanation:
                fields["explanation"] = self.explanation
        return fields


@dataclass(slots=True)
class CodingQuestion(QuestionBase):
    starter_code: str = ""
    test_cases: list[CodingTestCase] = field(default_factory=list)

    kind: ClassVar[QuestionKind | None] = QuestionKind.CODING

    def _kind_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"starterCode": self.starter_code}
        if self.test_cases:
            fields["testCases"] = [tc.to_item() for tc in self.test_cases]
        return fields


Question = UnclassifiedQuestion | MultipleChoiceQuestion | CodingQuestion


@dataclass(slots=True)
class QuestionBatch:
    kind: QuestionKind
    index: int  # 1-based, contiguous per kind
    questions: list[Question] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.kind.value}_batch_{self.index}"

    def __len__(self) -> int:
        return len(self.questions)


@dataclass(slots=True)
class Entity:
    type: str
    batch: str
    subcategories: list[str] | None = None
    description: str | None = None

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {"type": self.type}
        if self.subcategories is not None:
            item["subcategories"] = list(self.subcategories)
        if self.description is not None:
            item["description"] = self.description
        item["batch"] = self.batch
        return item


@dataclass(slots=True)
class AssessmentPage:
    items: list[dict[str, Any]]
    continuation_token: str | None
    has_more: bool


@dataclass(slots=True)
class ConsistencyReport:
    assessment_id: str
    scope: str
    write_state: str
    stored_entities: list[dict[str, Any]]
    expected_entities: list[dict[str, Any]]
    batch_labels: list[str]
    issues: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "assessmentId": self.assessment_id,
            "scope": self.scope,
            "writeState": self.write_state,
            "storedEntities": self.stored_entities,
            "expectedEntities": self.expected_entities,
            "batchLabels": self.batch_labels,
            "issues": list(self.issues),
            "isConsistent": self.is_consistent,
        }
