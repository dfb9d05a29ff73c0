"""Base class for deploy providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterator

from deployer.core.exceptions import ProviderError

# log(message, level=LogLevel.INFO)
LogFn = Callable[..., Awaitable[object]]

CONTENT_TYPES = {
    ".html": "text/html",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
}

TEXT_TYPES = frozenset({"text/html", "application/javascript", "text/css", "application/json"})


def content_type_for(file_name: str, with_charset: bool = False) -> str:
    """Content type for common static asset extensions."""
    content_type = CONTENT_TYPES.get(Path(file_name).suffix.lower(), "application/octet-stream")
    if with_charset and content_type in TEXT_TYPES:
        return f"{content_type}; charset=utf-8"
    return content_type


# Never published, even when sources are deployed as-is
EXCLUDED_NAMES = frozenset({".git"})


def iter_files(root: Path) -> Iterator[tuple[str, Path]]:
    """Yield ``(posix relative path, absolute path)`` for every file under root."""
    for path in sorted(root.rglob("*")):
        if EXCLUDED_NAMES.intersection(path.relative_to(root).parts):
            continue
        if path.is_file():
            yield path.relative_to(root).as_posix(), path


@dataclass(frozen=True)
class PublishResult:
    """Where a published build can be reached."""

    public_url: str
    provider_url: str | None = None
    project_name: str | None = None


class DeployProvider(ABC):
    """Publishes a build output directory for a slug.

    Subclasses implement:
    - name: Provider identifier used in errors and logs
    - publish(): Upload the output and return its URLs
    """

    name: str = "base"

    @abstractmethod
    async def publish(self, slug: str, output_dir: Path, log: LogFn) -> PublishResult:
        """Publish ``output_dir`` for ``slug``.

        Raises:
            ProviderError: On any publish failure.
        """
        pass

    def error(self, message: str) -> ProviderError:
        return ProviderError(self.name, message)
