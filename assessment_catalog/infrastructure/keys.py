"""
Two-part record keys.

Headers:  (``ASSESSMENT#<id>``, ``CLIENT#<scope>``)
Batches:  (``ASSESSMENT#<id>#<KIND>_BATCH_<n>``, ``CLIENT#<scope>``)

The batch partition key starts with the header partition key followed by
``#``, so every batch of an assessment is reachable with one prefix scan.
"""

from __future__ import annotations

import re

from ..domain.models import QuestionKind

HEADER_PREFIX = "ASSESSMENT#"
SCOPE_PREFIX = "CLIENT#"
BATCH_MARKER = "_BATCH_"

_BATCH_PK_RE = re.compile(
    r"^ASSESSMENT#(?P<assessment_id>[^#]+)#(?P<kind>[A-Z]+)_BATCH_(?P<index>\d+)$"
)


def header_pk(assessment_id: str) -> str:
    return f"{HEADER_PREFIX}{assessment_id}"


def scope_sk(scope: str) -> str:
    return f"{SCOPE_PREFIX}{scope}"


def header_key(assessment_id: str, scope: str) -> tuple[str, str]:
    return header_pk(assessment_id), scope_sk(scope)


def batch_pk_prefix(assessment_id: str) -> str:
    return f"{header_pk(assessment_id)}#"


def batch_pk(assessment_id: str, kind: QuestionKind, index: int) -> str:
    return f"{batch_pk_prefix(assessment_id)}{kind.key_token}{BATCH_MARKER}{index}"


def parse_batch_pk(pk: str) -> tuple[str, QuestionKind, int] | None:
    """Split a batch partition key into (assessment id, kind, index); None if not a batch key."""
    match = _BATCH_PK_RE.match(pk)
    if match is None:
        return None
    try:
        kind = QuestionKind.from_key_token(match["kind"])
    except ValueError:
        return None
    return match["assessment_id"], kind, int(match["index"])


def is_batch_pk(pk: str) -> bool:
    return BATCH_MARKER in pk


def scope_from_sk(sk: str) -> str:
    return sk[len(SCOPE_PREFIX) :] if sk.startswith(SCOPE_PREFIX) else sk
