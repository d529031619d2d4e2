import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TeamMemberCreate(BaseModel):
    project_id: uuid.UUID
    user_id: uuid.UUID
    # Project admins are assigned through /api/project-admin
    role: Literal["member", "lead", "manager"] = "member"


class AdminAssignment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(alias="userId")
