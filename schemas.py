from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class TransactionIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    type: TransactionType
    value: float = Field(..., ge=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1, max_length=100)


class TransactionUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[TransactionType] = None
    value: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class ImportRow(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    type: TransactionType
    value: float = Field(..., ge=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1, max_length=100)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    type: TransactionType
    value: float
    category_id: Optional[str]
    user_id: str
    created_at: datetime
    updated_at: datetime


class BalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    income: float
    outcome: float
    total: float


class TransactionListOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transactions: list[TransactionOut]
    total_transactions: int = Field(..., alias="totalTransactions")
    balance: BalanceOut


class ImportResultOut(BaseModel):
    transactions: list[TransactionOut]
    categories: list[CategoryOut]
