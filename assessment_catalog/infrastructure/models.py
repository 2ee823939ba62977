from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

KEY_ATTRIBUTES = ("PK", "SK")


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class KeyValueRecordMixin:
    """
    Two-part key (partition key ``PK``, sort key ``SK``) plus a schemaless
    JSON document. The SQL table is only used as a key-value store: no
    secondary indexes are declared and no query joins across records.
    """

    pk: Mapped[str] = mapped_column("PK", String(255), primary_key=True)
    sk: Mapped[str] = mapped_column("SK", String(255), primary_key=True)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    written_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def to_item(self) -> dict[str, Any]:
        return {"PK": self.pk, "SK": self.sk, **(self.attributes or {})}

    @property
    def key(self) -> tuple[str, str]:
        return (self.pk, self.sk)


class AssessmentRecordORM(KeyValueRecordMixin, Base):
    """Assessment header records."""

    __tablename__ = "assessments"


class QuestionBatchRecordORM(KeyValueRecordMixin, Base):
    """Question batch records, one per (assessment, kind, batch index)."""

    __tablename__ = "assessment_question_batches"
