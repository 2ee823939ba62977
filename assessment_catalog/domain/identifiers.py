"""
Assessment identifier allocation.

Identifiers look like ``ASSESS_<CODE>_<NNN>``: a short category code and a
per-(code, scope) sequence number found by scanning existing headers. The
store offers no atomic counter, so allocation is scan, check and retry with
a bounded number of attempts. The final header write is conditional, which
rules out overwrites; concurrent creators can still produce gaps or claim
numbers out of order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Protocol

from ..infrastructure.exceptions import AllocationExhaustedError

FALLBACK_CATEGORY_CODE = "GEN"
MAX_IDENTIFIER_ATTEMPTS = 100


class HeaderLookup(Protocol):
    def scan_category_ids(self, category_code: str, scope: str) -> list[str]: ...

    def header_exists(self, assessment_id: str, scope: str) -> bool: ...


def category_code(name: str | None, table: Mapping[str, str]) -> str:
    """
    Short code for a category name.

    Example:
        >>> category_code("Information Technology", {"Information Technology": "IT"})
        'IT'
        >>> category_code("Biotech", {})
        'BIO'
    """
    if not name or not name.strip():
        return FALLBACK_CATEGORY_CODE
    name = name.strip()
    if name in table:
        return table[name]
    code = "".join(ch for ch in name if ch.isalnum())[:3].upper()
    return code or FALLBACK_CATEGORY_CODE


def scope_from_identity(identity: str | None, default: str) -> str:
    if identity and "@" in identity:
        domain = identity.rsplit("@", 1)[1].strip()
        if domain:
            return domain
    return default


def format_assessment_id(code: str, number: int) -> str:
    return f"ASSESS_{code}_{number:03d}"


def parse_assessment_number(assessment_id: str, code: str) -> int | None:
    match = re.fullmatch(rf"ASSESS_{re.escape(code)}_(\d+)", assessment_id)
    return int(match.group(1)) if match else None


class IdentifierAllocator:
    def __init__(
        self,
        headers: HeaderLookup,
        max_attempts: int = MAX_IDENTIFIER_ATTEMPTS,
        logger: logging.Logger | None = None,
    ):
        self.headers = headers
        self.max_attempts = max_attempts
        self.logger = logger or logging.getLogger(__name__)

    def next_number(self, code: str, scope: str) -> int:
        numbers = [
            n
            for n in (
                parse_assessment_number(assessment_id, code)
                for assessment_id in self.headers.scan_category_ids(code, scope)
            )
            if n is not None
        ]
        return max(numbers, default=0) + 1

    def allocate(
        self, code: str, scope: str, claim: Callable[[str], bool] | None = None
    ) -> str:
        """
        Find a free identifier and, when ``claim`` is given, reserve it.

        ``claim`` performs the conditional header write and returns False if
        another writer got there first; that counts as one more collision.
        After a collision the next candidate is the larger of the previous
        number + 1 and a freshly scanned next number.

        Raises:
            AllocationExhaustedError: No identifier claimed within max_attempts
        """
        number = self.next_number(code, scope)
        candidate: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            candidate = format_assessment_id(code, number)
            if not self.headers.header_exists(candidate, scope):
                if claim is None or claim(candidate):
                    if attempt > 1:
                        self.logger.info(f"Allocated {candidate} after {attempt} attempts")
                    return candidate
                self.logger.warning(f"Lost conditional write for {candidate} in scope {scope}")
            else:
                self.logger.debug(f"Identifier {candidate} already taken in scope {scope}")
            number = max(number + 1, self.next_number(code, scope))

        raise AllocationExhaustedError(code, scope, self.max_attempts, candidate)
