"""Pydantic schemas for node errors and workflow problems."""

from datetime import datetime

from pydantic import BaseModel


class NodeErrorCreate(BaseModel):
    description: str
    is_fixed: bool = False
    solution: str | None = None
    solver_contact_id: int | None = None


class NodeErrorUpdate(BaseModel):
    description: str | None = None
    is_fixed: bool | None = None
    solution: str | None = None
    solver_contact_id: int | None = None
    fixed_at: datetime | None = None


class NodeErrorResponse(BaseModel):
    id: int
    workflow_id: int
    node_id: int
    description: str
    is_fixed: bool
    solution: str | None
    solver_contact_id: int | None
    reported_at: datetime | None
    fixed_at: datetime | None


class ProblemCreate(BaseModel):
    description: str
    is_solved: bool = False
    solution: str | None = None
    owner_names: str | None = None


class ProblemUpdate(BaseModel):
    description: str | None = None
    is_solved: bool | None = None
    solution: str | None = None
    owner_names: str | None = None
    solved_at: datetime | None = None


class ProblemResponse(BaseModel):
    id: int
    workflow_id: int
    description: str
    is_solved: bool
    solution: str | None
    owner_names: str | None
    reported_at: datetime | None
    solved_at: datetime | None
