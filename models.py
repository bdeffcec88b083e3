from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from rules_engine import UNCATEGORIZED


class BankType(str, Enum):
    debit = "debit"
    credit = "credit"


class RuleCondition(str, Enum):
    contains = "contains"
    starts_with = "startsWith"
    ends_with = "endsWith"
    equals = "equals"
    merchant_contains = "merchantContains"
    merchant_starts_with = "merchantStartsWith"
    merchant_ends_with = "merchantEndsWith"
    merchant_equals = "merchantEquals"


# Stored by value so rows stay readable as "startsWith" rather than "starts_with".
RULE_CONDITION_ENUM = SAEnum(
    RuleCondition,
    name="rulecondition",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Bank(Base, TimestampMixin):
    __tablename__ = "banks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email_filter: Mapped[str] = mapped_column(String(200), nullable=False)
    statement_day: Mapped[int] = mapped_column(Integer, nullable=False)
    due_day: Mapped[Optional[int]] = mapped_column(Integer)
    bank_type: Mapped[BankType] = mapped_column(
        SAEnum(BankType), nullable=False, default=BankType.debit
    )
    color: Mapped[str] = mapped_column(String(9), nullable=False)
    parser_type: Mapped[str] = mapped_column(
        String(40), nullable=False, default="generic"
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="bank",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sync_logs: Mapped[list["SyncLog"]] = relationship(
        "SyncLog",
        back_populates="bank",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "statement_day BETWEEN 1 AND 31", name="ck_banks_statement_day_range"
        ),
        CheckConstraint(
            "due_day IS NULL OR due_day BETWEEN 1 AND 31",
            name="ck_banks_due_day_range",
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bank_id: Mapped[int] = mapped_column(
        ForeignKey("banks.id", ondelete="CASCADE"), nullable=False
    )
    email_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")
    idr_amount: Mapped[Optional[float]] = mapped_column(Float)
    merchant: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, default=UNCATEGORIZED
    )
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    installment_terms: Mapped[Optional[int]] = mapped_column(Integer)
    raw_content: Mapped[Optional[str]] = mapped_column(Text)

    bank: Mapped["Bank"] = relationship("Bank", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_bank_date", "bank_id", "date"),
        Index("ix_transactions_bank_terms", "bank_id", "installment_terms"),
        CheckConstraint(
            "installment_terms IS NULL OR installment_terms IN (3, 6, 12, 24)",
            name="ck_transactions_installment_terms",
        ),
    )


class Rule(Base, TimestampMixin):
    __tablename__ = "rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    condition: Mapped[RuleCondition] = mapped_column(
        RULE_CONDITION_ENUM, nullable=False
    )
    condition_value: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bank_type: Mapped[Optional[BankType]] = mapped_column(SAEnum(BankType))

    __table_args__ = (Index("ix_rules_priority", "priority", "id"),)


class Setting(Base, TimestampMixin):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="#6B7280")


class SyncLog(Base):
    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bank_id: Mapped[int] = mapped_column(
        ForeignKey("banks.id", ondelete="CASCADE"), nullable=False
    )
    synced_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    email_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    bank: Mapped["Bank"] = relationship("Bank", back_populates="sync_logs")

    __table_args__ = (Index("ix_sync_logs_bank_synced", "bank_id", "synced_at"),)
