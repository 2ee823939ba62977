from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..infrastructure.config import CatalogConfig, get_settings
from ..infrastructure.exceptions import (
    AssessmentNotFoundError,
    ConditionalWriteError,
    StoreError,
    ValidationError,
    handle_store_error,
)
from ..infrastructure.logging import LogContext
from ..infrastructure.repositories import (
    AssessmentRepo,
    QuestionBatchRepo,
    decode_continuation_token,
    encode_continuation_token,
)
from ..infrastructure.uow import UnitOfWork
from .batching import (
    find_batch_issues,
    generate_entities,
    pack_questions,
    sort_batches,
    unpack_batches,
)
from .classifier import classify_questions, normalize_difficulty
from .identifiers import IdentifierAllocator, category_code, scope_from_identity
from .models import (
    ASSESSMENT_KIND,
    DEFAULT_TAGS,
    AssessmentPage,
    AssessmentStatus,
    ConsistencyReport,
    Question,
    QuestionBatch,
    WriteState,
)
from .schemas import fold_legacy_layout

# Service-owned or key-derived header fields an update may not touch
IMMUTABLE_FIELDS = frozenset(
    {"PK", "SK", "assessmentId", "createdAt", "scope", "categoryCode", "entities", "writeState"}
)

# Header attribute each list filter compares against
LIST_FILTER_FIELDS = (
    "category",
    "categoryCode",
    "difficulty",
    "status",
    "isPublished",
    "createdBy",
)

LEGACY_FIELDS = {"department": "category"}

# Header objects an update merges one level deep instead of replacing
NESTED_FIELDS = ("configuration", "scheduling", "target")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2024-05-01T10:00:00.000Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _target_from(data: Mapping[str, Any]) -> dict[str, Any]:
    target = dict(data.get("target") or {})
    return {
        "groups": list(target.get("groups") or []),
        "cohorts": list(target.get("cohorts") or []),
    }


class CatalogService:
    """
    Assessment catalog operations over the header and batch tables.

    Every store call runs in its own transaction. A create or an update that
    replaces questions writes the header as PENDING first and flips it to
    COMMITTED once all batches are written, so an interrupted write stays
    detectable through ``verify`` and fixable through ``repair``.
    """

    def __init__(
        self,
        SessionLocal: sessionmaker,
        config: CatalogConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.uow = UnitOfWork(SessionLocal)
        self.config = config or get_settings().catalog
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger(__name__)
        self.allocator = IdentifierAllocator(
            self, max_attempts=self.config.max_identifier_attempts, logger=self.logger
        )

    # ---------- Store access ----------

    @contextmanager
    def _store(
        self, operation: str, assessment_id: str | None = None
    ) -> Iterator[tuple[AssessmentRepo, QuestionBatchRepo]]:
        chunk = self.config.scan_chunk_size
        try:
            with self.uow.begin() as s:
                yield AssessmentRepo(s, chunk), QuestionBatchRepo(s, chunk)
        except StoreError as e:
            raise e.add_context(catalog_operation=operation, assessment_id=assessment_id)
        except SQLAlchemyError as e:
            raise handle_store_error(e, "commit").add_context(
                catalog_operation=operation, assessment_id=assessment_id
            ) from e

    def _now(self) -> str:
        return format_timestamp(self.clock())

    def _find_header(self, assessment_id: str, operation: str) -> dict[str, Any] | None:
        with self._store(operation, assessment_id) as (headers, _):
            return headers.find_header(assessment_id)

    def _require_header(self, assessment_id: str, operation: str) -> dict[str, Any]:
        header = self._find_header(assessment_id, operation)
        if header is None:
            raise AssessmentNotFoundError(assessment_id, operation)
        return header

    def _put_header(self, header: dict[str, Any], operation: str, if_absent: bool = False) -> None:
        with self._store(operation, header["assessmentId"]) as (headers, _):
            headers.put_header(header, if_absent=if_absent)

    def _load_batches(self, assessment_id: str, scope: str, operation: str) -> list[QuestionBatch]:
        with self._store(operation, assessment_id) as (_, batches):
            return sort_batches(batches.list_batches(assessment_id, scope))

    def _write_batches(
        self,
        assessment_id: str,
        scope: str,
        category: str | None,
        batches: list[QuestionBatch],
        operation: str,
    ) -> None:
        for batch in batches:
            with self._store(operation, assessment_id) as (_, batch_repo):
                batch_repo.put_batch(assessment_id, scope, category, batch)

    # Lookups used by the identifier allocator
    def scan_category_ids(self, category_code: str, scope: str) -> list[str]:
        with self._store("allocate_identifier") as (headers, _):
            return headers.scan_category_ids(category_code, scope)

    def header_exists(self, assessment_id: str, scope: str) -> bool:
        with self._store("allocate_identifier", assessment_id) as (headers, _):
            return headers.header_exists(assessment_id, scope)

    def _classify(
        self, raw_questions: list[Mapping[str, Any]], difficulty: str, assessment_id: str | None
    ) -> list[Question]:
        questions = classify_questions(raw_questions, difficulty)
        skipped = [q.question_id for q in questions if q.kind is None]
        if skipped:
            self.logger.warning(
                f"{len(skipped)} question(s) have neither options nor starter code and "
                f"will not be stored: {', '.join(skipped)}",
                extra={"assessment_id": assessment_id},
            )
        return questions

    @staticmethod
    def _compose(header: dict[str, Any], questions: list[Question]) -> dict[str, Any]:
        return {**header, "questions": [q.to_item() for q in questions]}

    # ---------- Operations ----------

    def create(self, data: Mapping[str, Any], created_by: str) -> dict[str, Any]:
        """
        Create an assessment with its questions.

        Allocates an identifier, classifies and packs the questions, writes
        the header (PENDING, conditional on the key being free), then one
        record per batch, then marks the header COMMITTED.

        Returns:
            The header merged with the stored question list

        Raises:
            AllocationExhaustedError: No free identifier within the retry bound
            StoreError: A write failed; records already written are kept
        """
        cfg = self.config
        data = fold_legacy_layout(dict(data))
        scope = scope_from_identity(created_by, cfg.default_scope)
        category = data.get("category") or data.get("department")
        code = category_code(category, cfg.category_codes)
        difficulty = normalize_difficulty(data.get("difficulty"))
        raw_questions = list(data.get("questions") or [])

        questions = self._classify(raw_questions, difficulty, None)
        batches = pack_questions(questions, cfg.batch_capacity)
        now = self._now()

        configuration = dict(data.get("configuration") or {})
        scheduling = dict(data.get("scheduling") or {})
        header: dict[str, Any] = {
            "assessmentId": None,
            "title": data.get("title"),
            "description": data.get("description") or "",
            "category": category,
            "categoryCode": code,
            "difficulty": difficulty,
            "tags": list(data.get("tags") or DEFAULT_TAGS),
            "kind": ASSESSMENT_KIND,
            "scope": scope,
            "entities": [entity.to_item() for entity in generate_entities(batches)],
            "configuration": {
                "duration": configuration.get("duration") or 60,
                "maxAttempts": configuration.get("maxAttempts") or 1,
                "passingScore": configuration.get("passingScore", 50),
                "randomizeQuestions": bool(configuration.get("randomizeQuestions", False)),
                "totalQuestions": configuration.get("totalQuestions") or len(raw_questions),
            },
            "scheduling": {
                "startDate": scheduling.get("startDate"),
                "endDate": scheduling.get("endDate"),
                "timezone": scheduling.get("timezone") or cfg.default_timezone,
            },
            "target": _target_from(data),
            "stats": {"avgScore": 0, "completed": 0, "highestScore": 0, "totalParticipants": 0},
            "status": str(data.get("status") or AssessmentStatus.ACTIVE.value).upper(),
            "isPublished": bool(data.get("isPublished", False)),
            "createdBy": created_by,
            "createdByName": data.get("createdByName") or created_by,
            "createdAt": now,
            "updatedAt": now,
            "writeState": WriteState.PENDING.value,
        }

        def claim(candidate: str) -> bool:
            header["assessmentId"] = candidate
            try:
                self._put_header(header, "create", if_absent=True)
            except ConditionalWriteError:
                return False
            return True

        with LogContext(scope=scope):
            assessment_id = self.allocator.allocate(code, scope, claim)
            with LogContext(assessment_id=assessment_id):
                self._write_batches(assessment_id, scope, category, batches, "create")
                header["writeState"] = WriteState.COMMITTED.value
                self._put_header(header, "create")
                self.logger.info(
                    f"Created assessment {assessment_id} with {len(batches)} batch(es) "
                    f"in scope {scope}"
                )

        return self._compose(header, unpack_batches(batches))

    def fetch(self, assessment_id: str) -> dict[str, Any] | None:
        """Header plus reassembled questions, or None when no header has this id."""
        header = self._find_header(assessment_id, "fetch")
        if header is None:
            self.logger.info(f"Assessment {assessment_id} not found")
            return None
        batches = self._load_batches(assessment_id, header["scope"], "fetch")
        return self._compose(header, unpack_batches(batches))

    def list(
        self,
        filters: Mapping[str, Any] | None = None,
        page_size: int | None = None,
        continuation_token: str | None = None,
    ) -> AssessmentPage:
        """
        One page of headers (without questions).

        Filtering happens while scanning, so a page may cost many more rows
        than it returns. ``scope`` narrows the key condition itself.
        """
        filters = {k: v for k, v in (filters or {}).items() if v is not None}
        size = page_size or self.config.default_page_size
        if size < 1 or size > self.config.max_page_size:
            raise ValidationError(
                "page_size", f"must be between 1 and {self.config.max_page_size}", page_size
            )
        start_key = decode_continuation_token(continuation_token) if continuation_token else None

        wanted = {k: filters[k] for k in LIST_FILTER_FIELDS if k in filters}

        def matches(item: dict[str, Any]) -> bool:
            return all(item.get(k) == v for k, v in wanted.items())

        with self._store("list") as (headers, _):
            items, next_key = headers.list_headers(
                size, start_key, scope=filters.get("scope"), predicate=matches if wanted else None
            )
        return AssessmentPage(
            items=items,
            continuation_token=encode_continuation_token(next_key) if next_key else None,
            has_more=next_key is not None,
        )

    def update(
        self, assessment_id: str, updates: Mapping[str, Any], updated_by: str | None = None
    ) -> dict[str, Any]:
        """
        Partial update of the header.

        ``configuration``, ``scheduling`` and ``target`` merge one level deep;
        every other field is replaced as given.

        A ``questions`` entry replaces every stored question: all batches are
        deleted and the new list is packed from scratch. Entities are then
        recomputed from the batches actually found in the store.
        """
        header = self._require_header(assessment_id, "update")
        scope = header["scope"]
        updates = fold_legacy_layout(dict(updates))

        for legacy, current in LEGACY_FIELDS.items():
            if legacy in updates:
                updates.setdefault(current, updates.pop(legacy))

        dropped = sorted(k for k in updates if k in IMMUTABLE_FIELDS)
        if dropped:
            self.logger.warning(
                f"Ignoring immutable field(s) in update of {assessment_id}: {', '.join(dropped)}"
            )
        raw_questions = updates.pop("questions", None)
        changes = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}

        merged = {**header, **changes}
        for key in NESTED_FIELDS:
            if isinstance(changes.get(key), Mapping) and isinstance(header.get(key), Mapping):
                merged[key] = {**header[key], **changes[key]}
        if "difficulty" in changes:
            merged["difficulty"] = normalize_difficulty(changes["difficulty"])
        if "status" in changes and isinstance(changes["status"], str):
            merged["status"] = changes["status"].upper()
        merged["updatedAt"] = self._now()
        if updated_by:
            merged["updatedBy"] = updated_by

        with LogContext(assessment_id=assessment_id, scope=scope):
            if raw_questions is None:
                self._put_header(merged, "update")
                batches = self._load_batches(assessment_id, scope, "update")
                self.logger.info(f"Updated assessment {assessment_id}")
                return self._compose(merged, unpack_batches(batches))

            merged["writeState"] = WriteState.PENDING.value
            self._put_header(merged, "update")

            with self._store("update", assessment_id) as (_, batch_repo):
                removed = batch_repo.delete_all_batches(assessment_id, scope)

            questions = self._classify(
                list(raw_questions), merged.get("difficulty"), assessment_id
            )
            new_batches = pack_questions(questions, self.config.batch_capacity)
            self._write_batches(
                assessment_id, scope, merged.get("category"), new_batches, "update"
            )

            persisted = self._load_batches(assessment_id, scope, "update")
            merged["entities"] = [entity.to_item() for entity in generate_entities(persisted)]
            merged["writeState"] = WriteState.COMMITTED.value
            self._put_header(merged, "update")
            self.logger.info(
                f"Replaced questions of {assessment_id}: removed {removed} batch(es), "
                f"wrote {len(new_batches)}"
            )
            return self._compose(merged, unpack_batches(persisted))

    def delete(self, assessment_id: str) -> dict[str, Any]:
        """Remove the header, then every batch under its key prefix."""
        header = self._require_header(assessment_id, "delete")
        scope = header["scope"]
        with LogContext(assessment_id=assessment_id, scope=scope):
            with self._store("delete", assessment_id) as (headers, _):
                headers.delete_header(assessment_id, scope)
            with self._store("delete", assessment_id) as (_, batch_repo):
                removed = batch_repo.delete_all_batches(assessment_id, scope)
            self.logger.info(f"Deleted assessment {assessment_id} and {removed} batch(es)")
        return {"assessmentId": assessment_id, "scope": scope, "deletedBatches": removed}

    def verify(self, assessment_id: str) -> ConsistencyReport:
        """Compare the stored header against the batches actually present."""
        header = self._require_header(assessment_id, "verify")
        return self._report(header, self._load_batches(assessment_id, header["scope"], "verify"))

    def repair(self, assessment_id: str) -> ConsistencyReport:
        """Recompute entities from the stored batches and mark the header COMMITTED."""
        header = self._require_header(assessment_id, "repair")
        scope = header["scope"]
        batches = self._load_batches(assessment_id, scope, "repair")
        header["entities"] = [entity.to_item() for entity in generate_entities(batches)]
        header["writeState"] = WriteState.COMMITTED.value
        self._put_header(header, "repair")
        self.logger.info(f"Repaired assessment {assessment_id} from {len(batches)} batch(es)")
        return self._report(header, batches)

    def batch_records(self, assessment_id: str) -> list[dict[str, Any]]:
        """Raw batch records of an assessment, keys included, for diagnostics."""
        header = self._require_header(assessment_id, "inspect")
        with self._store("inspect", assessment_id) as (_, batch_repo):
            return batch_repo.list_batch_items(assessment_id, header["scope"])

    def _report(self, header: dict[str, Any], batches: list[QuestionBatch]) -> ConsistencyReport:
        expected = [entity.to_item() for entity in generate_entities(batches)]
        stored = list(header.get("entities") or [])
        # headers written before write states existed count as committed
        state = header.get("writeState") or WriteState.COMMITTED.value

        issues = []
        if state != WriteState.COMMITTED.value:
            issues.append(f"Header write state is {state}")
        issues.extend(find_batch_issues(batches, self.config.batch_capacity))
        if stored != expected:
            issues.append("Stored entities do not match the persisted batches")

        report = ConsistencyReport(
            assessment_id=header["assessmentId"],
            scope=header["scope"],
            write_state=state,
            stored_entities=stored,
            expected_entities=expected,
            batch_labels=[batch.label for batch in batches],
            issues=issues,
        )
        if issues:
            self.logger.warning(
                f"Assessment {header['assessmentId']} is inconsistent: {'; '.join(issues)}"
            )
        return report
