"""Platform AI client.

Narrow request/response wrapper around claude-agent-sdk used for project
metadata suggestions and single-file source rewrites. Every public method
degrades to an empty result instead of raising, so callers can always fall
back to deterministic behavior.
"""

import asyncio
import json
import re
from functools import lru_cache
from typing import Any

from claude_agent_sdk import AssistantMessage, ClaudeAgentOptions, ClaudeSDKClient, TextBlock
from langsmith.integrations.claude_agent_sdk import configure_claude_agent_sdk

from deployer.config import settings
from deployer.models.metadata import MARKETPLACE_CATEGORIES, ProjectMetadataSuggestion
from deployer.utils.logging import get_logger

# Setup claude_agent_sdk with langsmith tracing
configure_claude_agent_sdk()

MAX_NAME_LENGTH = 80
MAX_DESCRIPTION_LENGTH = 300
MAX_TAGS = 5

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{1,64}$")

METADATA_SYSTEM_PROMPT = (
    "You are a product manager helping categorize AI and web apps into a marketplace.\n"
    'Respond with JSON only, containing fields "name", "category", "tags", '
    '"description" and "slug".\n'
    '"name" must be <= 40 characters. "category" must be one of:\n'
    + "\n".join(f"- {c}" for c in MARKETPLACE_CATEGORIES)
    + "\n"
    '"tags" must be an array of 1-5 short, lowercase keywords (no spaces).\n'
    '"description" should explain the app in <= 120 characters.\n'
    '"slug" must contain only lowercase letters, numbers, or hyphens.'
)

REWRITE_SYSTEM_PROMPT = (
    "You are a senior frontend engineer. You edit a single source file so that every "
    "Google GenAI / AI Studio client sends its requests to a given base URL instead of "
    "Google's endpoints. Keep all other code unchanged. Respond with the complete "
    "updated file only, with no explanations and no markdown fences."
)


def extract_json_block(text: str) -> str:
    """Return the JSON payload from a reply that may be wrapped in markdown."""
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        return text[start:end].strip()
    if "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        return text[start:end].strip()
    return text.strip()


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```lang ... ``` fence from a file-content reply."""
    stripped = text.strip()
    match = re.match(r"^```[\w+-]*\n(.*?)\n?```$", stripped, re.DOTALL)
    return match.group(1) if match else text


def normalize_slug_candidate(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if SLUG_PATTERN.match(candidate) else None


def normalize_category(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for category in MARKETPLACE_CATEGORIES:
        if category.lower() == wanted:
            return category
    return None


def normalize_tags(value: Any) -> list[str]:
    """Lower-case, strip, deduplicate (keeping order) and cap at five tags."""
    if not isinstance(value, list):
        return []
    tags: list[str] = []
    for tag in value:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags[:MAX_TAGS]


def _bounded_text(value: Any, limit: int) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if 0 < len(trimmed) <= limit:
        return trimmed
    return None


def parse_metadata_suggestion(payload: Any) -> ProjectMetadataSuggestion:
    """Validate every field of a raw AI reply independently."""
    if not isinstance(payload, dict):
        return ProjectMetadataSuggestion()

    return ProjectMetadataSuggestion(
        name=_bounded_text(payload.get("name"), MAX_NAME_LENGTH),
        category=normalize_category(payload.get("category")),
        tags=normalize_tags(payload.get("tags")),
        description=_bounded_text(payload.get("description"), MAX_DESCRIPTION_LENGTH),
        slug=normalize_slug_candidate(payload.get("slug")),
    )


def build_metadata_prompt(name: str, identifier: str, context: str | None) -> str:
    prompt = (
        f"App name: {name}\n"
        f"Source identifier (repo URL or file name): {identifier}\n"
    )
    if context:
        prompt += (
            "\nAdditional context (snippets from deployed app):\n" f"{context}\n"
        )
    return prompt + (
        "\nBased on the intent, audience and typical use case, choose the best category "
        "from the list,\nsuggest tags that would help users discover this app, propose a "
        "friendly name/description,\nand provide a concise slug (letters, numbers, "
        "hyphens) suitable for URLs."
    )


class AIService:
    """Client for the platform AI used by the deployment pipeline."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = settings.anthropic_api_key if api_key is None else api_key
        self.model = model or settings.ai_model
        self.timeout = timeout or settings.ai_timeout_seconds
        self.logger = get_logger("ai_service")

    def has_credentials(self) -> bool:
        return bool(self.api_key)

    async def _complete(self, system_prompt: str, prompt: str) -> str | None:
        """Send one prompt and collect the text reply."""
        options = ClaudeAgentOptions(
            system_prompt=system_prompt,
            model=self.model,
            max_turns=1,
            allowed_tools=[],
            permission_mode="plan",  # Read-only mode
            env={"ANTHROPIC_API_KEY": self.api_key},
        )

        async def run() -> str:
            response_text = ""
            async with ClaudeSDKClient(options=options) as client:
                await client.query(prompt)
                async for message in client.receive_response():
                    if isinstance(message, AssistantMessage):
                        for block in message.content:
                            if isinstance(block, TextBlock):
                                response_text += block.text
            return response_text

        return await asyncio.wait_for(run(), timeout=self.timeout)

    async def generate_project_metadata(
        self,
        name: str,
        identifier: str,
        context: str | None = None,
    ) -> ProjectMetadataSuggestion:
        """Suggest name, category, tags, description and slug for a project.

        Returns an empty suggestion when credentials are missing or the call
        fails for any reason.
        """
        if not self.has_credentials():
            return ProjectMetadataSuggestion()

        try:
            text = await self._complete(
                METADATA_SYSTEM_PROMPT,
                build_metadata_prompt(name, identifier, context),
            )
        except Exception as e:
            self.logger.warning("ai_service.metadata_failed", error=str(e))
            return ProjectMetadataSuggestion()

        if not text:
            return ProjectMetadataSuggestion()

        try:
            payload = json.loads(extract_json_block(text))
        except json.JSONDecodeError as e:
            self.logger.warning(
                "ai_service.metadata_parse_failed",
                error=str(e),
                raw=text[:500],
            )
            return ProjectMetadataSuggestion()

        return parse_metadata_suggestion(payload)

    async def rewrite_genai_base_url(
        self,
        file_path: str,
        source: str,
        target_base_url: str,
    ) -> str | None:
        """Ask the AI to retarget GenAI clients in one file.

        Returns the rewritten file, or None if the call failed.
        """
        if not self.has_credentials():
            return None

        prompt = (
            f"File: {file_path}\n"
            f"Target base URL: {target_base_url}\n\n"
            "Rewrite the file so that every Google GenAI client (GoogleGenAI, "
            "GoogleGenerativeAI, GoogleAI, GoogleAIClient or direct fetch calls to "
            "generativelanguage.googleapis.com) uses the target base URL, for example "
            "through httpOptions: { baseUrl }.\n\n"
            f"```\n{source}\n```"
        )

        try:
            text = await self._complete(REWRITE_SYSTEM_PROMPT, prompt)
        except Exception as e:
            self.logger.warning(
                "ai_service.rewrite_failed",
                file_path=file_path,
                error=str(e),
            )
            return None

        if not text or not text.strip():
            return None
        return strip_code_fences(text)


@lru_cache
def get_ai_service() -> AIService:
    """Get the AI service singleton."""
    return AIService()
