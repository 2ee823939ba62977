"""
Pydantic schemas for validating catalog inputs.

Callers send camelCase documents; the schemas accept both camelCase and
snake_case names, normalise enumerations and fold legacy field names into
their current place before anything reaches the store.
"""

from __future__ import annotations

import re
from html import unescape
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import AssessmentStatus, Difficulty

LEGACY_TARGET_FIELDS = {"targetDepartments": "groups", "targetYears": "cohorts"}
FLAT_CONFIGURATION_FIELDS = (
    "duration",
    "maxAttempts",
    "passingScore",
    "randomizeQuestions",
    "totalQuestions",
)


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Strip markup and control characters from plain string fields."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


def _upper(v):
    return v.strip().upper() if isinstance(v, str) else v


class ConfigurationInput(BaseValidationSchema):
    duration: int = Field(60, ge=1, description="Minutes")
    max_attempts: int = Field(1, ge=1)
    passing_score: float = Field(50, ge=0, le=100)
    randomize_questions: bool = False
    total_questions: int | None = Field(None, ge=0)


class SchedulingInput(BaseValidationSchema):
    start_date: str | None = None
    end_date: str | None = None
    timezone: str | None = None


class TargetInput(BaseValidationSchema):
    groups: list[str] = Field(default_factory=list)
    cohorts: list[str | int] = Field(default_factory=list)


def _fold_into(data: dict[str, Any], section: str, moves: dict[str, str]) -> None:
    present = [k for k in moves if k in data]
    if not present:
        return
    nested = data.get(section)
    nested = dict(nested) if isinstance(nested, dict) else {}
    for legacy in present:
        nested.setdefault(moves[legacy], data.pop(legacy))
    data[section] = nested


def fold_legacy_layout(data: Any) -> Any:
    """
    Accept the older flat payload layout.

    - ``targetDepartments``/``targetYears`` move into ``target``
    - top-level ``duration``, ``maxAttempts``, ... move into ``configuration``
    - a list-valued ``category`` is a tag list; ``department`` then names the category

    Values already present in the nested objects win.
    """
    if not isinstance(data, dict):
        return data
    data = dict(data)
    _fold_into(data, "target", LEGACY_TARGET_FIELDS)
    _fold_into(data, "configuration", {k: k for k in FLAT_CONFIGURATION_FIELDS})

    if isinstance(data.get("category"), list):
        tags = data.pop("category")
        existing = data.get("tags")
        data["tags"] = list(existing or []) + [t for t in tags if t not in (existing or [])]
        if "department" in data:
            data["category"] = data.pop("department")
    return data


class AssessmentCreateInput(BaseValidationSchema):
    """Validation schema for creating an assessment."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=10000)
    category: str | None = Field(
        None, max_length=255, validation_alias=AliasChoices("category", "department")
    )
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: list[str] | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)
    configuration: ConfigurationInput = Field(default_factory=ConfigurationInput)
    scheduling: SchedulingInput = Field(default_factory=SchedulingInput)
    target: TargetInput = Field(default_factory=TargetInput)
    status: AssessmentStatus = AssessmentStatus.ACTIVE
    is_published: bool = False
    created_by_name: str | None = Field(None, max_length=255)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_fields(cls, data):
        return fold_legacy_layout(data)

    @field_validator("difficulty", "status", mode="before")
    def normalize_enum_case(cls, v):
        return _upper(v)

    @field_validator("title")
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("Title cannot be empty")
        return v


class AssessmentUpdateInput(BaseValidationSchema):
    """
    Validation schema for partial updates.

    Only fields that were supplied are dumped. Unknown fields pass through
    untouched so callers can store extra attributes on the header.
    """

    model_config = ConfigDict(extra="allow")

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)
    category: str | None = Field(
        None, max_length=255, validation_alias=AliasChoices("category", "department")
    )
    difficulty: Difficulty | None = None
    tags: list[str] | None = None
    questions: list[dict[str, Any]] | None = None
    configuration: ConfigurationInput | None = None
    scheduling: SchedulingInput | None = None
    target: TargetInput | None = None
    status: AssessmentStatus | None = None
    is_published: bool | None = None
    stats: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_fields(cls, data):
        return fold_legacy_layout(data)

    @field_validator("difficulty", "status", mode="before")
    def normalize_enum_case(cls, v):
        return _upper(v)


class ListFilterInput(BaseValidationSchema):
    """Validation schema for list filters; every filter is optional."""

    scope: str | None = Field(None, max_length=255)
    category: str | None = Field(None, max_length=255)
    category_code: str | None = Field(None, max_length=32)
    difficulty: Difficulty | None = None
    status: AssessmentStatus | None = None
    is_published: bool | None = None
    created_by: str | None = Field(None, max_length=255)

    @field_validator("difficulty", "status", "category_code", mode="before")
    def normalize_enum_case(cls, v):
        return _upper(v)

    @field_validator("scope", "category", "created_by")
    def blank_is_none(cls, v):
        if v is not None and len(v.strip()) == 0:
            return None
        return v


class PaginationInput(BaseValidationSchema):
    """Validation schema for list pagination."""

    page_size: int | None = Field(None, ge=1, le=1000)
    continuation_token: str | None = Field(None, max_length=2048)


class ValidationErrorDetail(BaseModel):
    """Schema for validation error details."""

    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    """Schema for validation responses."""

    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(
    schema_class: type[BaseModel], data: dict[str, Any], exclude_unset: bool = False
) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Validated data is dumped with camelCase keys, the shape stored on headers.

    Example:
        >>> result = validate_input(AssessmentCreateInput, {"title": "Java basics"})
        >>> result.data["isPublished"]
        False
    """
    try:
        validated = schema_class.model_validate(data)
        return ValidationResponse(
            success=True,
            data=validated.model_dump(mode="json", by_alias=True, exclude_unset=exclude_unset),
        )
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):  # Pydantic validation errors
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
