"""Workflow CRUD endpoints.

Thin controllers: validate -> query -> return Pydantic response.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.models import Edge, Node, NodeError, Problem, Workflow
from app.schemas.workflow import (
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowUpdate,
)

router = APIRouter()
logger = structlog.stdlib.get_logger(__name__)


async def get_workflow_or_404(db: AsyncSession, workflow_id: int) -> Workflow:
    workflow = await db.get(Workflow, workflow_id)
    if not workflow:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found"
        )
    return workflow


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    total_q = await db.execute(select(func.count(Workflow.id)))
    total = total_q.scalar_one()

    q = (
        select(Workflow)
        .order_by(Workflow.updated_at.desc(), Workflow.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(q)
    workflows = result.scalars().all()

    return WorkflowListResponse(
        items=[WorkflowResponse.model_validate(w) for w in workflows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
):
    workflow = await get_workflow_or_404(db, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
):
    workflow = Workflow(**body.model_dump())
    db.add(workflow)
    await db.commit()
    await db.refresh(workflow)
    logger.info("workflow_created", workflow_id=workflow.id)
    return WorkflowResponse.model_validate(workflow)


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: int,
    body: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
):
    workflow = await get_workflow_or_404(db, workflow_id)

    update_data = body.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(workflow, field, value)

    await db.commit()
    await db.refresh(workflow)
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: int,
    db: AsyncSession = Depends(get_db),
):
    await get_workflow_or_404(db, workflow_id)

    # Children first: SQLite does not enforce ON DELETE CASCADE by default
    for model in (NodeError, Problem, Edge, Node):
        await db.execute(delete(model).where(model.workflow_id == workflow_id))
    await db.execute(delete(Workflow).where(Workflow.id == workflow_id))
    await db.commit()
    logger.info("workflow_deleted", workflow_id=workflow_id)
