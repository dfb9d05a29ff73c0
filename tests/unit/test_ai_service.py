"""Unit tests for the platform AI client."""

from unittest.mock import AsyncMock

import pytest

from deployer.services.ai_service import (
    AIService,
    build_metadata_prompt,
    extract_json_block,
    normalize_category,
    normalize_slug_candidate,
    normalize_tags,
    parse_metadata_suggestion,
    strip_code_fences,
)


class TestReplyParsing:
    """Tests for the reply helpers."""

    def test_extract_json_block(self):
        assert extract_json_block('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert extract_json_block('```\n{"a": 1}\n```') == '{"a": 1}'
        assert extract_json_block('  {"a": 1} ') == '{"a": 1}'

    def test_strip_code_fences(self):
        assert strip_code_fences("```ts\nconst a = 1;\n```") == "const a = 1;"
        assert strip_code_fences("const a = 1;\n") == "const a = 1;\n"

    def test_normalize_slug_candidate(self):
        assert normalize_slug_candidate(" My-App ") == "my-app"
        assert normalize_slug_candidate("bad slug") is None
        assert normalize_slug_candidate("x" * 65) is None
        assert normalize_slug_candidate(5) is None

    def test_normalize_category(self):
        assert normalize_category("image gen") == "Image Gen"
        assert normalize_category("Cooking") is None
        assert normalize_category(None) is None

    def test_normalize_tags(self):
        tags = normalize_tags([" AI ", "ai", "Tools", 3, "", "a", "b", "c", "d"])
        assert tags == ["ai", "tools", "a", "b", "c"]
        assert normalize_tags("ai") == []

    def test_fields_are_validated_independently(self):
        suggestion = parse_metadata_suggestion(
            {
                "name": "x" * 81,
                "category": "fun",
                "tags": "not-a-list",
                "description": "  A drawing toy  ",
                "slug": "Bad Slug",
            }
        )

        assert suggestion.name is None
        assert suggestion.category == "Fun"
        assert suggestion.tags == []
        assert suggestion.description == "A drawing toy"
        assert suggestion.slug is None

    def test_non_object_payload_is_empty(self):
        assert parse_metadata_suggestion(["name"]).is_empty

    def test_prompt_includes_context(self):
        prompt = build_metadata_prompt("Demo", "https://github.com/a/b", "<h1>Hi</h1>")
        assert "App name: Demo" in prompt
        assert "<h1>Hi</h1>" in prompt
        assert "Additional context" not in build_metadata_prompt("Demo", "b", None)


class TestAIService:
    """Tests for AIService with the transport mocked out."""

    @pytest.fixture
    def service(self) -> AIService:
        return AIService(api_key="test-key", model="sonnet", timeout=5)

    @pytest.mark.asyncio
    async def test_without_credentials_returns_empty(self):
        service = AIService(api_key="")
        service._complete = AsyncMock()

        suggestion = await service.generate_project_metadata("Demo", "demo.zip")
        rewritten = await service.rewrite_genai_base_url("a.ts", "x", "https://p")

        assert suggestion.is_empty
        assert rewritten is None
        service._complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_metadata_from_fenced_json(self, service):
        service._complete = AsyncMock(
            return_value=(
                "Here you go:\n```json\n"
                '{"name": "Pixel Studio", "category": "image gen", "tags": ["Art"], '
                '"description": "Draw pixels", "slug": "pixel-studio"}\n```'
            )
        )

        suggestion = await service.generate_project_metadata("Demo", "demo.zip", "ctx")

        assert suggestion.name == "Pixel Studio"
        assert suggestion.category == "Image Gen"
        assert suggestion.tags == ["art"]
        assert suggestion.slug == "pixel-studio"
        prompt = service._complete.await_args.args[1]
        assert "ctx" in prompt

    @pytest.mark.asyncio
    async def test_metadata_failures_degrade_to_empty(self, service):
        service._complete = AsyncMock(side_effect=RuntimeError("boom"))
        assert (await service.generate_project_metadata("Demo", "demo.zip")).is_empty

        service._complete = AsyncMock(return_value="not json at all")
        assert (await service.generate_project_metadata("Demo", "demo.zip")).is_empty

        service._complete = AsyncMock(return_value="")
        assert (await service.generate_project_metadata("Demo", "demo.zip")).is_empty

    @pytest.mark.asyncio
    async def test_rewrite_strips_fences(self, service):
        service._complete = AsyncMock(return_value="```js\nconst x = 1;\n```")

        result = await service.rewrite_genai_base_url("a.js", "const x = 0;", "https://p")

        assert result == "const x = 1;"

    @pytest.mark.asyncio
    async def test_rewrite_failures_return_none(self, service):
        service._complete = AsyncMock(side_effect=TimeoutError())
        assert await service.rewrite_genai_base_url("a.js", "x", "https://p") is None

        service._complete = AsyncMock(return_value="   ")
        assert await service.rewrite_genai_base_url("a.js", "x", "https://p") is None
