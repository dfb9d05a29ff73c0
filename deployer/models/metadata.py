"""Project metadata models (AI suggestions and their validated form)."""

from pydantic import BaseModel, Field

DEFAULT_CATEGORY = "Other"

MARKETPLACE_CATEGORIES = [
    "Development",
    "Image Gen",
    "Productivity",
    "Marketing",
    "Legal",
    "Fun",
]


class ProjectMetadataSuggestion(BaseModel):
    """Raw suggestion from the AI service. Every field may be missing."""

    name: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    description: str | None = None
    slug: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.name, self.category, self.tags, self.description, self.slug)
        )


class ProjectMetadataOverrides(BaseModel):
    """Metadata supplied explicitly by the caller."""

    name: str | None = None
    slug: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None


class ResolvedProjectMetadata(BaseModel):
    """Validated metadata that is safe to merge into a project."""

    name: str
    slug: str
    description: str | None = None
    category: str = DEFAULT_CATEGORY
    tags: list[str] = Field(default_factory=list)
    # False when the fields are seeds or caller overrides
    from_ai: bool = False
