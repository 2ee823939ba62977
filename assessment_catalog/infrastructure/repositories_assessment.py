# assessment_catalog/infrastructure/repositories_assessment.py
from __future__ import annotations

import builtins
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from .keys import (
    BATCH_MARKER,
    HEADER_PREFIX,
    SCOPE_PREFIX,
    header_key,
    header_pk,
    scope_from_sk,
    scope_sk,
)
from .logging import get_logger
from .models import AssessmentRecordORM
from .repositories_base import Item, Key, KeyValueRepository, ScanCondition, strip_key

logger = get_logger(__name__)


class AssessmentRepo(KeyValueRepository[AssessmentRecordORM]):
    """Header records, one per assessment, keyed (ASSESSMENT#<id>, CLIENT#<scope>)."""

    model = AssessmentRecordORM

    def __init__(self, session: Session, scan_chunk_size: int = 100):
        super().__init__(session, scan_chunk_size)

    # -------- Read --------

    def get_header(self, assessment_id: str, scope: str) -> Item | None:
        item = self.get_item(*header_key(assessment_id, scope))
        return strip_key(item) if item is not None else None

    def header_exists(self, assessment_id: str, scope: str) -> bool:
        return self.get_item(*header_key(assessment_id, scope)) is not None

    def find_header(self, assessment_id: str) -> Item | None:
        """Locate a header by id alone; the caller does not know its scope."""
        matches = self.scan_all(
            ScanCondition(pk_equals=header_pk(assessment_id), sk_prefix=SCOPE_PREFIX)
        )
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"Assessment {assessment_id} has headers in {len(matches)} scopes; "
                f"using {matches[0]['SK']}"
            )
        header = strip_key(matches[0])
        header.setdefault("scope", scope_from_sk(matches[0]["SK"]))
        return header

    def scan_category_ids(self, category_code: str, scope: str) -> builtins.list[str]:
        """Assessment ids already issued for a category code within one scope."""
        items = self.scan_all(
            ScanCondition(
                pk_prefix=f"{HEADER_PREFIX}ASSESS_{category_code}_",
                pk_excludes=BATCH_MARKER,
                sk_equals=scope_sk(scope),
            )
        )
        return [item["PK"][len(HEADER_PREFIX) :] for item in items]

    def list_headers(
        self,
        page_size: int,
        start_key: Key | None = None,
        scope: str | None = None,
        predicate: Callable[[Item], bool] | None = None,
    ) -> tuple[builtins.list[Item], Key | None]:
        """
        One page of headers in key order.

        Returns the page (keys stripped) and the key to resume after, which is
        None when no further matching header exists.
        """
        condition = ScanCondition(
            pk_prefix=HEADER_PREFIX,
            pk_excludes=BATCH_MARKER,
            sk_equals=scope_sk(scope) if scope is not None else None,
        )
        page = self.scan(condition, limit=page_size + 1, start_key=start_key, predicate=predicate)
        items = page.items
        next_key: Key | None = None
        if len(items) > page_size:
            items = items[:page_size]
            next_key = (items[-1]["PK"], items[-1]["SK"])
        return [strip_key(item) for item in items], next_key

    # -------- Write --------

    def put_header(self, header: dict[str, Any], if_absent: bool = False) -> Item:
        pk, sk = header_key(header["assessmentId"], header["scope"])
        return strip_key(self.put_item({**header, "PK": pk, "SK": sk}, if_absent=if_absent))

    def delete_header(self, assessment_id: str, scope: str) -> bool:
        return self.delete_item(*header_key(assessment_id, scope))
