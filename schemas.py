from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import BankType, RuleCondition


EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class BankIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email_filter: str = Field(..., max_length=200, pattern=EMAIL_PATTERN)
    statement_day: int = Field(..., ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    bank_type: BankType = BankType.debit
    color: Optional[str] = Field(default=None, max_length=9)
    parser_type: Optional[str] = None


class BankUpdate(BaseModel):
    """Partial update; ``due_day=None`` sent explicitly clears the due day."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email_filter: Optional[str] = Field(default=None, max_length=200, pattern=EMAIL_PATTERN)
    statement_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    bank_type: Optional[BankType] = None
    color: Optional[str] = Field(default=None, max_length=9)
    parser_type: Optional[str] = None


class RuleIn(BaseModel):
    condition: RuleCondition
    condition_value: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    priority: int = 0
    bank_type: Optional[BankType] = None


class RuleUpdate(BaseModel):
    """Partial update; ``bank_type=None`` sent explicitly makes the rule apply to all banks."""

    condition: Optional[RuleCondition] = None
    condition_value: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    priority: Optional[int] = None
    bank_type: Optional[BankType] = None


class TransactionUpdate(BaseModel):
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    installment_terms: Optional[int] = None


class SettingIn(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: Union[str, int, float]


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)


class EmailIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, max_length=255)
    subject: str = ""
    content: str
    received_at: datetime


class SyncIn(BaseModel):
    bank_id: int
    emails: list[EmailIn] = Field(default_factory=list)
