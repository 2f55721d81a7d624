"""Pydantic schemas for workflow endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.workflow import WorkflowStatus


class WorkflowCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    domain: str | None = None
    version: str = "1"
    status: WorkflowStatus = WorkflowStatus.DRAFT


class WorkflowUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    domain: str | None = None
    version: str | None = None
    status: WorkflowStatus | None = None


class WorkflowResponse(BaseModel):
    id: int
    title: str
    description: str | None
    domain: str | None
    version: str
    status: WorkflowStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WorkflowListResponse(BaseModel):
    items: list[WorkflowResponse]
    total: int
    page: int
    page_size: int
