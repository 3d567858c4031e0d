from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    pass


class DoseSequence(TypeDecorator):
    """List of Decimal doses stored as a JSON array of strings, so no float rounding."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return [str(v) for v in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return [Decimal(v) for v in value]


class Medication(Base):
    __tablename__ = "medications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="other")
    fixed_dose: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    dosage_unit: Mapped[str] = mapped_column(String(20), nullable=False, default="mg")
    frequency: Mapped[str] = mapped_column(String(30), nullable=False, default="once_daily")
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class DosagePattern(Base):
    __tablename__ = "dosage_patterns"
    __table_args__ = (
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_dosage_patterns_date_order"),
        # at most one open-ended pattern per medication, enforced at commit time
        Index(
            "uq_dosage_patterns_one_open",
            "medication_id",
            unique=True,
            sqlite_where=text("end_date IS NULL"),
            postgresql_where=text("end_date IS NULL"),
        ),
        Index("ix_dosage_patterns_medication_dates", "medication_id", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    medication_id: Mapped[int] = mapped_column(ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False)
    pattern_sequence: Mapped[list] = mapped_column(DoseSequence, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class PatternAudit(Base):
    """Append-only trail of pattern creations and closures."""

    __tablename__ = "pattern_audit"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    pattern_id: Mapped[int] = mapped_column(ForeignKey("dosage_patterns.id", ondelete="RESTRICT"), nullable=False)
    medication_id: Mapped[int] = mapped_column(ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # created, closed
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class DoseLog(Base):
    __tablename__ = "dose_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    medication_id: Mapped[int] = mapped_column(ForeignKey("medications.id", ondelete="RESTRICT"), nullable=False)
    log_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_dose: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # frozen at log time from the pattern active on log_date
    expected_dose: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    dosage_pattern_id: Mapped[Optional[int]] = mapped_column(ForeignKey("dosage_patterns.id", ondelete="RESTRICT"), nullable=True)
    pattern_day_number: Mapped[Optional[int]] = mapped_column(nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
