"""Natural-language workflow generation via the LLM messages API.

The model is asked for a single JSON object (title, description, domain,
nodes, edges). Replies are parsed leniently: models often wrap the object
in prose or a fenced code block, so extraction tries
1. the whole reply as JSON
2. the body of each fenced code block
3. every brace-balanced {...} span, left to right
and gives up with None when nothing parses.
"""

import json
import re
import time
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from app.core.config import settings
from app.core.metrics import generation_duration_seconds, generation_requests_total
from app.schemas.generation import GeneratedWorkflow

logger = structlog.stdlib.get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

PROMPT_TEMPLATE = """You are a workflow design expert. Based on the following description, create a workflow with nodes and edges.

Workflow description: {prompt}

Return ONLY a valid JSON object with this exact structure:
{{
  "title": "Workflow Title",
  "description": "Brief description",
  "domain": "Domain name (e.g., HR, IT, Finance)",
  "nodes": [
    {{"id": "node-1", "type": "action|decision|exception|human|terminal", "title": "Node title", "x": 100, "y": 100, "details": {{}}}}
  ],
  "edges": [
    {{"id": "edge-1", "from_node_id": "node-1", "to_node_id": "node-2", "label": "optional label", "style": "solid|dashed"}}
  ]
}}

Node types:
- action: Automated task or operation
- decision: Decision point with multiple outcomes
- exception: Error handling or exception case
- human: Requires human intervention/approval
- terminal: End point of workflow

Create a logical flow with appropriate node types. Position nodes in a readable layout (space them 200-300px apart). Include at least one starting node and one terminal node. Make the workflow practical and complete."""


class GenerationError(Exception):
    """The LLM call failed or its reply could not be turned into a workflow."""

    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _balanced_spans(text: str):
    """Yield every {...} span whose braces balance, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : i + 1]
                    break
        start = text.find("{", start + 1)


def extract_json_object(text: str) -> dict[str, Any] | None:
    if not text:
        return None

    found = _loads_object(text.strip())
    if found is not None:
        return found

    for match in _FENCE_RE.finditer(text):
        found = _loads_object(match.group(1).strip())
        if found is not None:
            return found

    for span in _balanced_spans(text):
        found = _loads_object(span)
        if found is not None:
            return found
    return None


def make_llm_client(
    api_key: str | None = None,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url or settings.llm.llm_base_url,
        headers={
            "x-api-key": api_key if api_key is not None else settings.llm.llm_api_key,
            "anthropic-version": settings.llm.llm_api_version,
            "content-type": "application/json",
        },
        timeout=settings.llm.llm_timeout,
        transport=transport,
    )


class WorkflowGenerator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str | None = None,
        max_tokens: int | None = None,
    ):
        self._client = client
        self._model = model or settings.llm.llm_model
        self._max_tokens = max_tokens or settings.llm.llm_max_tokens

    async def generate(self, prompt: str) -> GeneratedWorkflow:
        """Ask the model for a workflow. Cancel the awaiting task to abort.

        Raises:
            GenerationError: On transport failure, a non-2xx reply, or a reply
                without a usable workflow object.
        """
        start = time.perf_counter()
        try:
            workflow = await self._generate(prompt)
        except GenerationError:
            generation_requests_total.labels(status="failed").inc()
            raise
        generation_requests_total.labels(status="ok").inc()
        generation_duration_seconds.observe(time.perf_counter() - start)
        logger.info(
            "workflow_generated",
            node_count=len(workflow.nodes),
            edge_count=len(workflow.edges),
        )
        return workflow

    async def _generate(self, prompt: str) -> GeneratedWorkflow:
        body = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": PROMPT_TEMPLATE.format(prompt=prompt)}],
        }
        try:
            response = await self._client.post("/v1/messages", json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "llm_call_failed",
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise GenerationError(
                "Failed to generate workflow with AI",
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("llm_call_failed", error=str(exc))
            raise GenerationError("AI service unreachable") from exc
        except ValueError as exc:
            raise GenerationError("AI service returned a non-JSON response") from exc
        if not isinstance(payload, dict):
            raise GenerationError("AI service returned an unexpected response")

        text = "".join(
            block.get("text", "")
            for block in payload.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        data = extract_json_object(text)
        if data is None:
            logger.warning("llm_reply_unparseable", reply=text[:500])
            raise GenerationError("AI reply did not contain a workflow object")

        try:
            return GeneratedWorkflow.model_validate(data)
        except ValidationError as exc:
            logger.warning("llm_reply_invalid", errors=exc.error_count())
            raise GenerationError(f"AI reply is not a valid workflow: {exc}") from exc
