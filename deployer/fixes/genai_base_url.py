"""Retarget Google GenAI / AI Studio clients to the platform proxy.

Rule-based rewrites cover:
- direct endpoint literals (generativelanguage.googleapis.com, aistudio, ai.google.dev)
- ``baseUrl`` / ``apiEndpoint`` string literals
- ``new GoogleGenAI(...)`` / ``new GoogleGenerativeAI(...)`` constructor options
  (``httpOptions`` is inserted or updated)
- ``new GoogleAI(...)`` / ``new GoogleAIClient(...)`` option objects

Every rule is idempotent, so running the fix twice leaves a file unchanged.
When no rule touches a file and the platform AI is configured, the file is
handed to the AI service as a fallback.
"""

import json
import os
import re
from pathlib import Path

from deployer.config import settings
from deployer.fixes.base import BaseFix, FixContext
from deployer.models.deployment import LogLevel
from deployer.services.ai_service import AIService, get_ai_service
from deployer.utils.logging import get_logger

SKIP_DIRS = frozenset(
    {"node_modules", "dist", "build", ".next", ".output", ".vercel", ".git", ".cache"}
)

SOURCE_EXTENSIONS = frozenset({".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"})

GENAI_PACKAGES = ("@google/generative-ai", "@google/genai")

GOOGLE_ENDPOINT_PREFIXES = (
    "https://generativelanguage.googleapis.com",
    "https://aistudio.googleapis.com",
    "https://aistudio.google.com",
    "https://ai.google.dev",
)

GENAI_USAGE = re.compile(
    r"@google/gen(?:erative-ai|ai)\b"
    r"|\bGoogleGenerativeAI\b"
    r"|\bGoogleGenAI\b"
    r"|\bGoogleAI(?:Client)?\b"
    r"|generativelanguage\.googleapis\.com"
)

URL_LITERAL_KEY = re.compile(r"(baseUrl|apiEndpoint)\s*:\s*(['\"`])[^'\"`]*\2")
BASE_URL_KEY = re.compile(r"baseUrl\s*:\s*(['\"`])[^'\"`]*\1")
API_ENDPOINT_KEY = re.compile(r"apiEndpoint\s*:\s*(['\"`])[^'\"`]*\1")
HTTP_OPTIONS = re.compile(r"httpOptions\s*:\s*(\{[\s\S]*?\})")

GENAI_CTOR_OBJECT = re.compile(
    r"(new\s+(?:GoogleGenerativeAI|GoogleGenAI)\s*\(\s*)(\{[\s\S]*?\})(\s*\))"
)
GENAI_CTOR_ARG = re.compile(
    r"new\s+(GoogleGenerativeAI|GoogleGenAI)\s*\(\s*([^)]+?)\s*\)"
)
AI_CLIENT_CTOR_OBJECT = re.compile(
    r"(new\s+(?:GoogleAIClient|GoogleAI)\s*\(\s*)(\{[\s\S]*?\})(\s*\))"
)
AI_CLIENT_CTOR_ARG = re.compile(
    r"new\s+(GoogleAIClient|GoogleAI)\s*\(\s*([^)]+?)\s*\)"
)

logger = get_logger(__name__)


def normalize_base_url(raw: str) -> str:
    return raw.rstrip("/")


def looks_like_genai_client(content: str) -> bool:
    return GENAI_USAGE.search(content) is not None


def has_genai_dependency(work_dir: Path) -> bool:
    """True if package.json lists a Google GenAI SDK."""
    pkg_path = work_dir / "package.json"
    if not pkg_path.is_file():
        return False
    try:
        pkg = json.loads(pkg_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    if not isinstance(pkg, dict):
        return False

    names: set[str] = set()
    for key in ("dependencies", "devDependencies"):
        section = pkg.get(key)
        if isinstance(section, dict):
            names.update(section)
    return any(name in names for name in GENAI_PACKAGES)


def collect_genai_files(root: Path) -> list[Path]:
    """Source files that reference a Google GenAI client, in walk order."""
    results: list[Path] = []
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        for name in sorted(files):
            path = Path(current) / name
            if path.suffix.lower() not in SOURCE_EXTENSIONS:
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            if looks_like_genai_client(content):
                results.append(path)
    return results


def _insert_properties(obj: str, props: list[str]) -> str:
    """Append ``props`` before the closing brace of an object literal."""
    close = obj.rfind("}")
    if close == -1:
        return obj

    head, tail = obj[:close], obj[close:]
    body = head.rstrip()
    trailing = head[len(body):] or " "

    indent_match = re.search(r"(\n[ \t]*)[^\n]*$", body)
    indent = indent_match.group(1) if indent_match else " "
    separator = "" if body.endswith(("{", ",")) else ","

    return body + separator + indent + ("," + indent).join(props) + trailing + tail


def _http_options_literal(target: str) -> str:
    return f"httpOptions: {{ baseUrl: '{target}', apiEndpoint: '{target}' }}"


def ensure_base_and_endpoint(obj: str, target: str) -> str:
    """Set baseUrl/apiEndpoint in an object literal, adding any that are missing."""
    has_base = BASE_URL_KEY.search(obj) is not None
    has_endpoint = API_ENDPOINT_KEY.search(obj) is not None

    updated = obj
    if has_base:
        updated = BASE_URL_KEY.sub(lambda _: f"baseUrl: '{target}'", updated, count=1)
    if has_endpoint:
        updated = API_ENDPOINT_KEY.sub(
            lambda _: f"apiEndpoint: '{target}'", updated, count=1
        )

    missing = []
    if not has_base:
        missing.append(f"baseUrl: '{target}'")
    if not has_endpoint:
        missing.append(f"apiEndpoint: '{target}'")
    if not missing:
        return updated
    return _insert_properties(updated, missing)


def upsert_http_options(obj: str, target: str) -> str:
    """Point ``httpOptions`` at the target, creating it if absent."""
    if HTTP_OPTIONS.search(obj):
        return HTTP_OPTIONS.sub(
            lambda m: "httpOptions: " + ensure_base_and_endpoint(m.group(1), target),
            obj,
            count=1,
        )
    return _insert_properties(obj, [_http_options_literal(target)])


def _wrap_bare_argument(match: re.Match, target: str) -> str:
    class_name, arg = match.group(1), match.group(2).strip()
    if "{" in arg or not arg:
        return match.group(0)
    return f"new {class_name}({{ apiKey: {arg}, {_http_options_literal(target)} }})"


def rewrite_genai_constructors(source: str, target: str) -> str:
    updated = GENAI_CTOR_OBJECT.sub(
        lambda m: m.group(1) + upsert_http_options(m.group(2), target) + m.group(3),
        source,
    )
    return GENAI_CTOR_ARG.sub(lambda m: _wrap_bare_argument(m, target), updated)


def rewrite_ai_client_constructors(source: str, target: str) -> str:
    updated = AI_CLIENT_CTOR_OBJECT.sub(
        lambda m: (
            m.group(1)
            + upsert_http_options(ensure_base_and_endpoint(m.group(2), target), target)
            + m.group(3)
        ),
        source,
    )
    return AI_CLIENT_CTOR_ARG.sub(lambda m: _wrap_bare_argument(m, target), updated)


def apply_rule_based_rewrite(content: str, target: str) -> str:
    """Apply every rewrite rule to one source file's content."""
    updated = content
    for endpoint in GOOGLE_ENDPOINT_PREFIXES:
        updated = updated.replace(endpoint, target)

    updated = URL_LITERAL_KEY.sub(lambda m: f"{m.group(1)}: '{target}'", updated)
    updated = rewrite_genai_constructors(updated, target)
    return rewrite_ai_client_constructors(updated, target)


class GenAIBaseUrlFix(BaseFix):
    """Routes Google GenAI SDK traffic through the platform proxy."""

    def __init__(
        self,
        ai_service: AIService | None = None,
        target_base_url: str | None = None,
    ):
        self._ai_service = ai_service
        self.target_base_url = normalize_base_url(
            target_base_url or settings.genai_proxy_base_url
        )

    @property
    def ai_service(self) -> AIService:
        if self._ai_service is None:
            self._ai_service = get_ai_service()
        return self._ai_service

    @property
    def id(self) -> str:
        return "rewrite-genai-base-url"

    @property
    def description(self) -> str:
        return (
            "Retarget Google GenAI (AI Studio) apps to the platform proxy base URL, "
            "with rule-based rewrites and AI fallback."
        )

    async def detect(self, ctx: FixContext) -> bool:
        if ctx.is_post_build:
            return False
        return has_genai_dependency(ctx.work_dir) or bool(collect_genai_files(ctx.work_dir))

    async def apply(self, ctx: FixContext) -> None:
        files = collect_genai_files(ctx.work_dir)
        if not files:
            await ctx.log(
                "Detected a Google GenAI dependency but no client code to rewrite.",
                LogLevel.WARNING,
            )
            return

        can_use_ai = self.ai_service.has_credentials()
        updated_count = 0
        ai_attempts = 0

        for path in files:
            original = path.read_text(encoding="utf-8")
            rewritten = apply_rule_based_rewrite(original, self.target_base_url)

            if rewritten == original and self.target_base_url in original:
                continue

            if rewritten == original and can_use_ai:
                ai_attempts += 1
                relative = str(path.relative_to(ctx.work_dir))
                ai_result = await self.ai_service.rewrite_genai_base_url(
                    relative, original, self.target_base_url
                )
                if ai_result and ai_result != original:
                    path.write_text(ai_result, encoding="utf-8")
                    updated_count += 1
                continue

            if rewritten != original:
                path.write_text(rewritten, encoding="utf-8")
                updated_count += 1

        logger.info(
            "genai_rewrite.completed",
            deployment_id=ctx.deployment_id,
            files=len(files),
            updated=updated_count,
            ai_attempts=ai_attempts,
        )

        if updated_count:
            await ctx.log(
                f"Retargeted Google GenAI clients in {updated_count} file(s) "
                f"to {self.target_base_url}"
            )
        elif ai_attempts:
            await ctx.log(
                "Google GenAI rewrite attempted but no changes were produced by AI. "
                "Please verify the app manually.",
                LogLevel.WARNING,
            )
        else:
            await ctx.log(
                "Detected Google GenAI usage but nothing was rewritten. "
                "Skipping GenAI base URL retargeting.",
                LogLevel.WARNING,
            )
