"""Metadata resolver.

Produces a validated name/slug/category/tags/description for a project,
either from caller overrides or from an AI suggestion built on a short
context extracted from the project's files.
"""

from functools import lru_cache
from pathlib import Path
from urllib.parse import urlparse

from deployer.config import settings
from deployer.models.deployment import SourceType
from deployer.models.metadata import (
    DEFAULT_CATEGORY,
    ProjectMetadataOverrides,
    ResolvedProjectMetadata,
)
from deployer.services.ai_service import (
    AIService,
    get_ai_service,
    normalize_category,
    normalize_slug_candidate,
    normalize_tags,
)
from deployer.utils.logging import get_logger
from deployer.utils.strings import collapse_whitespace, slugify

MAX_CONTEXT_LENGTH = 2000
MAX_FILE_LIST = 20

logger = get_logger(__name__)


def _trim(value: str) -> str:
    return value[:MAX_CONTEXT_LENGTH]


def build_inline_html_context(html_content: str | None) -> str | None:
    if not html_content:
        return None
    normalized = collapse_whitespace(html_content)
    return _trim(normalized) if normalized else None


def build_directory_context(root: str | Path) -> str | None:
    """Summarize a directory: index.html head plus the top-level entries."""
    root = Path(root)
    if not root.is_dir():
        return None

    snippets: list[str] = []

    index_path = root / "index.html"
    if index_path.is_file():
        try:
            html = index_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            html = ""
        normalized = _trim(collapse_whitespace(html))
        if normalized:
            snippets.append(f"index.html snippet:\n{normalized}")

    try:
        names = []
        for entry in sorted(root.iterdir(), key=lambda p: p.name):
            names.append(f"{entry.name}/" if entry.is_dir() else entry.name)
            if len(names) >= MAX_FILE_LIST:
                break
    except OSError:
        names = []
    if names:
        snippets.append("Top-level files:\n" + ", ".join(names))

    if not snippets:
        return None
    return _trim("\n\n".join(snippets))


def derive_identifier_seed(identifier: str, fallback: str) -> str:
    """Last path segment of a repo URL or file name, without ``.git``."""
    parsed = urlparse(identifier)
    path = parsed.path if parsed.scheme else identifier
    segments = [s for s in path.replace("\\", "/").split("/") if s.strip()]
    if segments:
        return segments[-1].strip().removesuffix(".git") or fallback
    return fallback


def _clean(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


class MetadataService:
    """Resolves project metadata, optionally with help from the AI service."""

    def __init__(self, ai_service: AIService | None = None, static_root: Path | None = None):
        self.ai_service = ai_service or get_ai_service()
        self.static_root = static_root or settings.static_root

    def build_context(
        self,
        source_type: SourceType,
        html_content: str | None = None,
        work_dir: str | Path | None = None,
        slug_seed: str | None = None,
    ) -> str | None:
        """First non-empty of: inline HTML, working dir scan, stored output."""
        if source_type == SourceType.HTML:
            inline = build_inline_html_context(html_content)
            if inline:
                return inline

        if work_dir:
            work_dir_context = build_directory_context(work_dir)
            if work_dir_context:
                return work_dir_context

        if slug_seed:
            return build_directory_context(self.static_root / slugify(slug_seed))

        return None

    async def ensure_project_metadata(
        self,
        seed_name: str,
        identifier: str,
        source_type: SourceType,
        html_content: str | None = None,
        slug_seed: str | None = None,
        work_dir: str | Path | None = None,
        overrides: ProjectMetadataOverrides | None = None,
    ) -> ResolvedProjectMetadata:
        """Resolve metadata for a project. Never raises on AI failure."""
        fallback_slug_seed = slug_seed or derive_identifier_seed(identifier, seed_name)

        if overrides is not None:
            return self.from_overrides(seed_name, fallback_slug_seed, overrides)

        context = self.build_context(
            source_type,
            html_content=html_content,
            work_dir=work_dir,
            slug_seed=fallback_slug_seed,
        )
        suggestion = await self.ai_service.generate_project_metadata(
            seed_name, identifier, context
        )

        if suggestion.is_empty:
            logger.info("metadata.no_suggestion", seed_name=seed_name)

        name = _clean(suggestion.name) or seed_name
        slug = normalize_slug_candidate(suggestion.slug) or slugify(fallback_slug_seed)

        return ResolvedProjectMetadata(
            name=name,
            slug=slug,
            description=_clean(suggestion.description),
            category=suggestion.category or DEFAULT_CATEGORY,
            tags=normalize_tags(suggestion.tags),
            from_ai=not suggestion.is_empty,
        )

    @staticmethod
    def from_overrides(
        seed_name: str,
        slug_seed: str,
        overrides: ProjectMetadataOverrides,
    ) -> ResolvedProjectMetadata:
        name = _clean(overrides.name) or seed_name
        slug_candidate = _clean(overrides.slug) or _clean(overrides.name) or name or slug_seed
        return ResolvedProjectMetadata(
            name=name,
            slug=slugify(slug_candidate),
            description=_clean(overrides.description),
            category=(
                normalize_category(overrides.category)
                or _clean(overrides.category)
                or DEFAULT_CATEGORY
            ),
            tags=normalize_tags(overrides.tags or []),
        )


@lru_cache
def get_metadata_service() -> MetadataService:
    """Get the metadata service singleton."""
    return MetadataService()
