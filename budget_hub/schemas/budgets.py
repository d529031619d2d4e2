import uuid
from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .common import PartialUpdate


ExpenseStatus = Literal["pending", "approved", "rejected", "paid"]
VersionStatus = Literal["draft", "submitted", "approved", "rejected"]


class ExpenseCreate(BaseModel):
    project_id: uuid.UUID
    category_id: uuid.UUID
    description: str = Field(min_length=1, max_length=1000)
    amount: Decimal = Field(gt=0)
    expense_date: Optional[date] = None


class ExpenseUpdate(PartialUpdate):
    category_id: Optional[uuid.UUID] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    expense_date: Optional[date] = None
    # System admin override only
    status: Optional[ExpenseStatus] = None


class ExpenseDecision(BaseModel):
    status: Literal["approved", "rejected"]
    comments: Optional[str] = Field(default=None, max_length=1000)


class BudgetCategoryCreate(BaseModel):
    project_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    allocated_amount: Decimal = Field(default=Decimal(0), ge=0)
    budget_limit: Optional[Decimal] = Field(default=None, ge=0)
    budget_version_id: Optional[uuid.UUID] = None


class BudgetCategoryUpdate(PartialUpdate):
    clearable = frozenset({"description", "budget_limit"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    allocated_amount: Optional[Decimal] = Field(default=None, ge=0)
    budget_limit: Optional[Decimal] = Field(default=None, ge=0)


class BudgetVersionCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)


class BudgetVersionUpdate(PartialUpdate):
    clearable = frozenset({"description"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[VersionStatus] = None
