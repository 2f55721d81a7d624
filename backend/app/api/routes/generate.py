"""LLM workflow generation endpoint."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_workflow_generator, get_workflow_importer
from app.core.config import settings
from app.schemas.generation import GenerateRequest, GenerateResponse
from app.services.table_store import StoreError
from app.services.workflow_generator import GenerationError, WorkflowGenerator
from app.services.workflow_importer import WorkflowImporter

router = APIRouter()
logger = structlog.stdlib.get_logger(__name__)


@router.post("/generate", response_model=GenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_workflow(
    body: GenerateRequest,
    generator: WorkflowGenerator = Depends(get_workflow_generator),
    importer: WorkflowImporter = Depends(get_workflow_importer),
):
    if not settings.llm.llm_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured",
        )

    try:
        generated = await generator.generate(body.prompt)
    except GenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    try:
        result = await importer.import_generated(generated)
    except StoreError as exc:
        logger.error("generated_workflow_import_failed", error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return GenerateResponse(
        workflow_id=result.workflow_id,
        workflow=generated,
        node_id_map=result.node_id_map,
        skipped_edges=result.skipped_edges,
    )
