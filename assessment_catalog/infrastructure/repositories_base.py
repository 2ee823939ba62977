# assessment_catalog/infrastructure/repositories_base.py
from __future__ import annotations

import base64
import binascii
import builtins
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import ConditionalWriteError, ValidationError, handle_store_error
from .logging import log_store_operation
from .models import KEY_ATTRIBUTES

T = TypeVar("T")  # ORM model type

Item = dict[str, Any]
Key = tuple[str, str]


@dataclass(slots=True, frozen=True)
class ScanCondition:
    """Key conditions a scan can push down to the store."""

    pk_equals: str | None = None
    pk_prefix: str | None = None
    pk_excludes: str | None = None
    sk_equals: str | None = None
    sk_prefix: str | None = None

    def clauses(self, model: Any) -> builtins.list[Any]:
        # identifiers contain "_", so LIKE wildcards must be escaped
        clauses: builtins.list[Any] = []
        if self.pk_equals is not None:
            clauses.append(model.pk == self.pk_equals)
        if self.pk_prefix is not None:
            clauses.append(model.pk.startswith(self.pk_prefix, autoescape=True))
        if self.pk_excludes is not None:
            clauses.append(~model.pk.contains(self.pk_excludes, autoescape=True))
        if self.sk_equals is not None:
            clauses.append(model.sk == self.sk_equals)
        if self.sk_prefix is not None:
            clauses.append(model.sk.startswith(self.sk_prefix, autoescape=True))
        return clauses


@dataclass(slots=True)
class ScanPage:
    items: builtins.list[Item] = field(default_factory=list)
    last_key: Key | None = None  # None once the scan reached the end of the table


def encode_continuation_token(key: Key) -> str:
    payload = json.dumps({"PK": key[0], "SK": key[1]}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_continuation_token(token: str) -> Key:
    """Inverse of encode_continuation_token; anything else is a ValidationError."""
    try:
        data = json.loads(base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8"))
        pk, sk = data["PK"], data["SK"]
    except (binascii.Error, UnicodeError, ValueError, TypeError, KeyError) as e:
        raise ValidationError("continuation_token", "is malformed", token) from e
    if not isinstance(pk, str) or not isinstance(sk, str):
        raise ValidationError("continuation_token", "is malformed", token)
    return pk, sk


def strip_key(item: Item) -> Item:
    return {k: v for k, v in item.items() if k not in KEY_ATTRIBUTES}


class KeyValueRepository(Generic[T]):
    """
    Generic key-value access over one table with a (PK, SK) primary key.
    - get / put / delete address exactly one record.
    - scan walks the table in (PK, SK) order in chunks, applying key
      conditions in SQL and an optional item predicate in Python.
    - SQLAlchemy failures surface as StoreError subclasses.
    """

    model: type[T]  # must be set by subclasses

    def __init__(self, session: Session, scan_chunk_size: int = 100):
        if not hasattr(self, "model") or self.model is None:
            raise ValueError(f"{self.__class__.__name__}.model must be set to an ORM class.")
        if scan_chunk_size < 1:
            raise ValueError("scan_chunk_size must be at least 1")
        self.s = session
        self.scan_chunk_size = scan_chunk_size

    # ---------- Read ----------
    @log_store_operation("get_item")
    def get_item(self, pk: str, sk: str) -> Item | None:
        try:
            obj = self.s.get(self.model, (pk, sk))
        except SQLAlchemyError as e:
            raise handle_store_error(e, "get_item", {"key": [pk, sk]}) from e
        return obj.to_item() if obj is not None else None

    @log_store_operation("scan")
    def scan(
        self,
        condition: ScanCondition | None = None,
        limit: int | None = None,
        start_key: Key | None = None,
        predicate: Callable[[Item], bool] | None = None,
    ) -> ScanPage:
        """
        Scan records matching ``condition`` (and ``predicate``) after ``start_key``.

        Stops early once ``limit`` matching items are collected; the page's
        ``last_key`` is then the key of the last returned item. An exhausted
        scan returns ``last_key=None``.
        """
        condition = condition or ScanCondition()
        items: builtins.list[Item] = []
        cursor = start_key

        try:
            while True:
                stmt = select(self.model).where(*condition.clauses(self.model))
                if cursor is not None:
                    stmt = stmt.where(
                        or_(
                            self.model.pk > cursor[0],
                            and_(self.model.pk == cursor[0], self.model.sk > cursor[1]),
                        )
                    )
                stmt = stmt.order_by(self.model.pk, self.model.sk).limit(self.scan_chunk_size)
                rows = self.s.scalars(stmt).all()

                for row in rows:
                    cursor = row.key
                    item = row.to_item()
                    if predicate is not None and not predicate(item):
                        continue
                    items.append(item)
                    if limit is not None and len(items) >= limit:
                        return ScanPage(items=items, last_key=row.key)

                if len(rows) < self.scan_chunk_size:
                    return ScanPage(items=items, last_key=None)
        except SQLAlchemyError as e:
            raise handle_store_error(e, "scan", {"start_key": start_key}) from e

    def scan_all(
        self,
        condition: ScanCondition | None = None,
        predicate: Callable[[Item], bool] | None = None,
    ) -> builtins.list[Item]:
        return self.scan(condition, predicate=predicate).items

    # ---------- Write ----------
    @log_store_operation("put_item")
    def put_item(self, item: Item, if_absent: bool = False) -> Item:
        """
        Write one record, replacing any record under the same key.

        With ``if_absent`` the write fails with ConditionalWriteError when a
        record already exists under the key; nothing is overwritten.
        """
        pk, sk = item["PK"], item["SK"]
        attributes = json.loads(json.dumps(strip_key(item)))
        try:
            if if_absent:
                if self.s.get(self.model, (pk, sk)) is not None:
                    raise ConditionalWriteError("Record already exists", key=(pk, sk))
                self.s.add(self.model(pk=pk, sk=sk, attributes=attributes))
            else:
                self.s.merge(self.model(pk=pk, sk=sk, attributes=attributes))
            self.s.flush()
        except IntegrityError as e:
            raise ConditionalWriteError(str(e), key=(pk, sk)) from e
        except SQLAlchemyError as e:
            raise handle_store_error(e, "put_item", {"key": [pk, sk]}) from e
        return {"PK": pk, "SK": sk, **attributes}

    @log_store_operation("delete_item")
    def delete_item(self, pk: str, sk: str) -> bool:
        try:
            obj = self.s.get(self.model, (pk, sk))
            if obj is None:
                return False
            self.s.delete(obj)
            self.s.flush()
        except SQLAlchemyError as e:
            raise handle_store_error(e, "delete_item", {"key": [pk, sk]}) from e
        return True
