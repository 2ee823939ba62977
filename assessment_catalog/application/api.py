"""
Application API layer with comprehensive error handling and validation.

This module provides the catalog operations callers use: input validation
through the pydantic schemas, structured logging, and conversion of
unexpected failures into catalog errors carrying operation context.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import sessionmaker

from ..domain.models import AssessmentPage, ConsistencyReport
from ..domain.schemas import (
    AssessmentCreateInput,
    AssessmentUpdateInput,
    ListFilterInput,
    PaginationInput,
    validate_input,
)
from ..domain.services import CatalogService
from ..infrastructure.config import CatalogConfig
from ..infrastructure.db import create_database_engine, create_session_factory, create_tables
from ..infrastructure.exceptions import (
    CatalogError,
    MultipleValidationError,
    ValidationError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.logging import LogContext, get_logger, log_operation

logger = get_logger(__name__)


def build_catalog_service(
    SessionLocal: sessionmaker | None = None,
    config: CatalogConfig | None = None,
    clock: Callable[[], datetime] | None = None,
    create_schema: bool = False,
) -> CatalogService:
    """
    Wire a CatalogService to the configured database.

    Args:
        SessionLocal: Session factory to use (built from settings if None)
        config: Catalog settings (from the environment if None)
        clock: Callable returning the current aware datetime
        create_schema: Create missing tables first (local runs and tests;
            deployed databases are migrated with Alembic)

    Example:
        >>> service = build_catalog_service(create_schema=True)
        >>> page = list_assessments(service)
    """
    if SessionLocal is None:
        engine = create_database_engine()
        if create_schema:
            create_tables(engine)
        SessionLocal = create_session_factory(engine)
    elif create_schema:
        create_tables(SessionLocal.kw["bind"])
    return CatalogService(SessionLocal, config=config, clock=clock, logger=get_logger("catalog"))


def _validated(
    schema_class: type[BaseModel], data: Any, label: str, exclude_unset: bool = False
) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(label, "must be an object", data)

    validation_result = validate_input(schema_class, data, exclude_unset=exclude_unset)
    if not validation_result.success:
        errors = [ValidationError(e.field, e.message, e.value) for e in validation_result.errors]
        error_msg = "; ".join(f"{e.field}: {e.message}" for e in validation_result.errors)
        logger.warning(f"{label} validation failed: {error_msg}")
        if len(errors) == 1:
            raise errors[0]
        raise MultipleValidationError(errors)

    if validation_result.data is None:
        raise RuntimeError("Validation succeeded but returned no data")
    return validation_result.data


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required", value)
    if "#" in value:
        raise ValidationError(field, "cannot contain '#'", value)
    return value.strip()


def _wrap_failure(e: Exception, message: str, context: dict[str, Any]) -> CatalogError:
    error_details = log_error_details(e, context)
    logger.error(message, extra=error_details)
    if isinstance(e, CatalogError):
        return e
    return CatalogError(
        f"{message}: {str(e)}",
        details=error_details,
        user_message=create_user_friendly_error_message(e),
    )


@log_operation("create_assessment")
def create_assessment(
    service: CatalogService, data: dict[str, Any], created_by: str
) -> dict[str, Any]:
    """
    Create an assessment and store its questions.

    Args:
        service: Catalog service
        data: camelCase assessment document; ``questions`` holds raw questions
        created_by: Creator identity (an email address determines the scope)

    Returns:
        Header fields plus the stored question list

    Raises:
        ValidationError: If input data is invalid
        AllocationExhaustedError: If no identifier could be reserved
        StoreError: If a write failed

    Example:
        >>> created = create_assessment(
        ...     service,
        ...     {"title": "Java basics", "category": "Information Technology"},
        ...     "faculty@example.edu",
        ... )
        >>> created["assessmentId"]
        'ASSESS_IT_001'
    """
    created_by = _require_text("created_by", created_by)
    validated = _validated(AssessmentCreateInput, data, "assessment_data")

    try:
        with LogContext(user_id=created_by):
            return service.create(validated, created_by)
    except Exception as e:
        raise _wrap_failure(
            e, "Failed to create assessment", {"title": validated.get("title")}
        ) from e


@log_operation("get_assessment")
def get_assessment(service: CatalogService, assessment_id: str) -> dict[str, Any] | None:
    """Header plus questions, or None when the assessment does not exist."""
    assessment_id = _require_text("assessment_id", assessment_id)
    try:
        with LogContext(assessment_id=assessment_id):
            return service.fetch(assessment_id)
    except Exception as e:
        raise _wrap_failure(
            e, "Failed to fetch assessment", {"assessment_id": assessment_id}
        ) from e


@log_operation("list_assessments")
def list_assessments(
    service: CatalogService,
    filters: dict[str, Any] | None = None,
    page_size: int | None = None,
    continuation_token: str | None = None,
) -> AssessmentPage:
    """
    Page through assessment headers.

    Example:
        >>> page = list_assessments(service, {"categoryCode": "IT"}, page_size=20)
        >>> while page.has_more:
        ...     page = list_assessments(service, page_size=20,
        ...                             continuation_token=page.continuation_token)
    """
    criteria = _validated(ListFilterInput, filters or {}, "filters")
    paging = _validated(
        PaginationInput,
        {"pageSize": page_size, "continuationToken": continuation_token},
        "pagination",
    )
    try:
        return service.list(criteria, paging["pageSize"], paging["continuationToken"])
    except Exception as e:
        raise _wrap_failure(e, "Failed to list assessments", {"filters": criteria}) from e


@log_operation("update_assessment")
def update_assessment(
    service: CatalogService,
    assessment_id: str,
    updates: dict[str, Any],
    updated_by: str | None = None,
) -> dict[str, Any]:
    """
    Apply a partial update.

    Supplying ``questions`` replaces every stored question of the assessment.

    Raises:
        ValidationError: If input data is invalid
        AssessmentNotFoundError: If no header has this id
    """
    assessment_id = _require_text("assessment_id", assessment_id)
    validated = _validated(AssessmentUpdateInput, updates, "update_data", exclude_unset=True)

    try:
        with LogContext(assessment_id=assessment_id, user_id=updated_by):
            return service.update(assessment_id, validated, updated_by)
    except Exception as e:
        raise _wrap_failure(
            e,
            "Failed to update assessment",
            {"assessment_id": assessment_id, "fields": sorted(validated)},
        ) from e


@log_operation("delete_assessment")
def delete_assessment(service: CatalogService, assessment_id: str) -> dict[str, Any]:
    assessment_id = _require_text("assessment_id", assessment_id)
    try:
        with LogContext(assessment_id=assessment_id):
            return service.delete(assessment_id)
    except Exception as e:
        raise _wrap_failure(
            e, "Failed to delete assessment", {"assessment_id": assessment_id}
        ) from e


@log_operation("verify_assessment")
def verify_assessment(service: CatalogService, assessment_id: str) -> ConsistencyReport:
    assessment_id = _require_text("assessment_id", assessment_id)
    try:
        with LogContext(assessment_id=assessment_id):
            return service.verify(assessment_id)
    except Exception as e:
        raise _wrap_failure(
            e, "Failed to verify assessment", {"assessment_id": assessment_id}
        ) from e


@log_operation("repair_assessment")
def repair_assessment(service: CatalogService, assessment_id: str) -> ConsistencyReport:
    """Rebuild the entities summary from stored batches and mark the header committed."""
    assessment_id = _require_text("assessment_id", assessment_id)
    try:
        with LogContext(assessment_id=assessment_id):
            return service.repair(assessment_id)
    except Exception as e:
        raise _wrap_failure(
            e, "Failed to repair assessment", {"assessment_id": assessment_id}
        ) from e
