from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountType, TransactionDirection, TransactionSource


class TransactionIn(BaseModel):
    """A transaction ready to be persisted, from manual entry or a parser."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    amount_native_cents: int = Field(..., gt=0)
    currency_native: str = Field(..., min_length=3, max_length=3)
    direction: TransactionDirection
    description: str = Field(..., min_length=1)
    category: Optional[str] = Field(default=None, max_length=100)
    category_confidence: Optional[float] = Field(default=None, ge=0, le=1)
    txn_datetime: datetime
    account_id: Optional[int] = None
    source: TransactionSource = TransactionSource.manual
    source_meta: Optional[str] = None
    dedupe_hash: Optional[str] = Field(default=None, max_length=128)
    parser_version: Optional[str] = Field(default=None, max_length=20)
    is_transfer: bool = False
    is_refund: bool = False
    notes: Optional[str] = None

    @field_validator("currency_native")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @field_validator("category", "notes")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class ManualTransactionIn(BaseModel):
    """Raw values from the add-transaction form, validated by the store."""

    amount: str
    description: str
    direction: TransactionDirection = TransactionDirection.out
    date: str
    hour: str = "00"
    minute: str = "00"
    category: Optional[str] = None
    new_category: bool = False
    account_id: Optional[int] = None
    currency: Optional[str] = None
    notes: Optional[str] = None


class AccountIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.bank
    currency: str = Field(default="SGD", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)


class RuleIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    pattern: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    priority: int = Field(default=100, ge=0, le=10_000)


class CategoryUpdateIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)


class MonthIn(BaseModel):
    month: str


@dataclass(frozen=True)
class MailMessage:
    id: str
    subject: str
    snippet: str
    received_at: str


@dataclass(frozen=True)
class MonthlySummary:
    month_key: str
    total_in: int
    total_out: int
    net: int


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: int


@dataclass(frozen=True)
class IngestResult:
    parsed: int
    inserted: int
    duplicates: int
