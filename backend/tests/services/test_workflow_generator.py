"""Tests for LLM workflow generation: reply parsing and upstream errors.

Run: pytest backend/tests/services/test_workflow_generator.py -v
"""

import json

import httpx
import pytest

from app.schemas.generation import GeneratedWorkflow
from app.services.workflow_generator import (
    GenerationError,
    WorkflowGenerator,
    extract_json_object,
    make_llm_client,
)

WORKFLOW = {
    "title": "Laptop request",
    "domain": "IT",
    "nodes": [
        {"id": "node-1", "type": "human", "title": "Submit", "x": 100, "y": 100},
        {"id": "node-2", "type": "terminal", "title": "Ship", "x": 100, "y": 350},
    ],
    "edges": [{"id": "edge-1", "from_node_id": "node-1", "to_node_id": "node-2"}],
}


# ---------------------------------------------------------------------------
# extract_json_object
# ---------------------------------------------------------------------------


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object(json.dumps(WORKFLOW)) == WORKFLOW

    def test_fenced_block(self):
        text = f"Here you go:\n```json\n{json.dumps(WORKFLOW)}\n```\nEnjoy."
        assert extract_json_object(text) == WORKFLOW

    def test_object_embedded_in_prose(self):
        text = f"Sure! {json.dumps(WORKFLOW)} Let me know if you need changes."
        assert extract_json_object(text) == WORKFLOW

    def test_braces_inside_strings_do_not_confuse_span_search(self):
        obj = {"title": "Use {curly} braces", "nodes": []}
        text = f"Result: {json.dumps(obj)} -- done }}"
        assert extract_json_object(text) == obj

    def test_skips_unparseable_span_and_finds_next(self):
        text = 'First {not json} then {"title": "ok"}'
        assert extract_json_object(text) == {"title": "ok"}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_returns_none_without_object(self, text):
        assert extract_json_object(text) is None


# ---------------------------------------------------------------------------
# Schema coercion
# ---------------------------------------------------------------------------


class TestGeneratedSchema:
    def test_integer_ids_and_bad_values_are_coerced(self):
        generated = GeneratedWorkflow.model_validate(
            {
                "title": "t",
                "nodes": [{"id": 1, "details": "none"}],
                "edges": [{"from_node_id": 1, "to_node_id": 2, "style": "dotted"}],
            }
        )
        assert generated.nodes[0].id == "1"
        assert generated.nodes[0].details == {}
        assert generated.edges[0].from_node_id == "1"
        assert generated.edges[0].style == "solid"
        assert generated.domain == "General"


# ---------------------------------------------------------------------------
# WorkflowGenerator
# ---------------------------------------------------------------------------


def _generator(handler):
    client = make_llm_client(
        api_key="test-key",
        base_url="https://llm.example.com",
        transport=httpx.MockTransport(handler),
    )
    return WorkflowGenerator(client, model="test-model", max_tokens=512), client


def _reply(text):
    return {"content": [{"type": "text", "text": text}]}


class TestWorkflowGenerator:
    @pytest.mark.asyncio
    async def test_sends_prompt_and_parses_reply(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=_reply(f"```json\n{json.dumps(WORKFLOW)}\n```"))

        generator, client = _generator(handler)
        async with client:
            workflow = await generator.generate("Laptop requests for new hires")

        assert workflow.title == "Laptop request"
        assert [n.id for n in workflow.nodes] == ["node-1", "node-2"]

        request = seen[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["max_tokens"] == 512
        assert "Laptop requests for new hires" in body["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_joins_text_blocks_only(self):
        half = len(json.dumps(WORKFLOW)) // 2
        raw = json.dumps(WORKFLOW)
        payload = {
            "content": [
                {"type": "text", "text": raw[:half]},
                {"type": "tool_use", "id": "x"},
                {"type": "text", "text": raw[half:]},
            ]
        }
        generator, client = _generator(lambda r: httpx.Response(200, json=payload))
        async with client:
            workflow = await generator.generate("x")
        assert len(workflow.edges) == 1

    @pytest.mark.asyncio
    async def test_upstream_error_keeps_status(self):
        generator, client = _generator(
            lambda r: httpx.Response(529, json={"error": {"type": "overloaded_error"}})
        )
        async with client:
            with pytest.raises(GenerationError) as exc_info:
                await generator.generate("x")
        assert exc_info.value.upstream_status == 529

    @pytest.mark.asyncio
    async def test_unreachable_service(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        generator, client = _generator(handler)
        async with client:
            with pytest.raises(GenerationError) as exc_info:
                await generator.generate("x")
        assert exc_info.value.upstream_status is None

    @pytest.mark.asyncio
    async def test_reply_without_object(self):
        generator, client = _generator(
            lambda r: httpx.Response(200, json=_reply("I cannot help with that."))
        )
        async with client:
            with pytest.raises(GenerationError):
                await generator.generate("x")

    @pytest.mark.asyncio
    async def test_reply_with_invalid_shape(self):
        bad = {"title": "t", "nodes": [{"title": "missing id"}]}
        generator, client = _generator(
            lambda r: httpx.Response(200, json=_reply(json.dumps(bad)))
        )
        async with client:
            with pytest.raises(GenerationError):
                await generator.generate("x")
