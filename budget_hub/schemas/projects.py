import uuid
from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .common import PartialUpdate


ProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]
MilestoneStatus = Literal["not_started", "in_progress", "completed", "overdue"]


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    total_budget: Decimal = Field(ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = "planning"
    department: Optional[str] = None
    business_unit_id: Optional[uuid.UUID] = None
    # Defaults to the caller
    manager_id: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectUpdate(PartialUpdate):
    clearable = frozenset({"description", "start_date", "end_date", "department", "business_unit_id", "manager_id"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[ProjectStatus] = None
    total_budget: Optional[Decimal] = Field(default=None, ge=0)
    allocated_budget: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    department: Optional[str] = None
    business_unit_id: Optional[uuid.UUID] = None
    manager_id: Optional[uuid.UUID] = None


class BusinessUnitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    manager_id: Optional[uuid.UUID] = None


class BusinessUnitUpdate(PartialUpdate):
    clearable = frozenset({"description", "manager_id"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    manager_id: Optional[uuid.UUID] = None


class MilestoneCreate(BaseModel):
    project_id: uuid.UUID
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    due_date: date
    status: MilestoneStatus = "not_started"
    progress: int = Field(default=0, ge=0, le=100)


class MilestoneUpdate(PartialUpdate):
    clearable = frozenset({"description", "due_date", "completion_date"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    due_date: Optional[date] = None
    status: Optional[MilestoneStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    completion_date: Optional[date] = None
