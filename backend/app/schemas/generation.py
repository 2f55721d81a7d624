"""Pydantic schemas for LLM workflow generation."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class GeneratedNode(BaseModel):
    """A node as proposed by the model. ``id`` is the provider's own id."""

    id: str
    type: str = "action"
    title: str = "Node"
    x: float = 100.0
    y: float = 100.0
    details: dict[str, Any] = {}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("details", mode="before")
    @classmethod
    def coerce_details(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


class GeneratedEdge(BaseModel):
    id: str | None = None
    from_node_id: str
    to_node_id: str
    label: str | None = None
    style: Literal["solid", "dashed"] = "solid"

    @field_validator("id", "from_node_id", "to_node_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("style", mode="before")
    @classmethod
    def coerce_style(cls, v: Any) -> Any:
        return v if v in ("solid", "dashed") else "solid"


class GeneratedWorkflow(BaseModel):
    title: str = "Generated workflow"
    description: str | None = None
    domain: str = "General"
    nodes: list[GeneratedNode] = []
    edges: list[GeneratedEdge] = []


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=8000)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Prompt is required")
        return v


class GenerateResponse(BaseModel):
    workflow_id: int
    workflow: GeneratedWorkflow
    node_id_map: dict[str, int]
    skipped_edges: list[str]
