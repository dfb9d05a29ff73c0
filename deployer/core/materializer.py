"""Source materializer.

Resolves a project descriptor into a working directory of source files:
GitHub repositories and remote archives are downloaded as ZIPs, uploaded
archives are decoded, and inline HTML is written as ``index.html``.
"""

import asyncio
import base64
import binascii
import io
import re
import shutil
import zipfile
from pathlib import Path
from urllib.parse import urlparse

import httpx

from deployer.config import settings
from deployer.core.events import Broadcaster
from deployer.core.exceptions import MaterializationError
from deployer.models.deployment import Deployment, LogLevel, SourceType
from deployer.utils.logging import get_logger

GIT_MARKER = ".git"

# Branches tried, in order, when downloading a GitHub archive
DEFAULT_BRANCHES = ("main", "master")

_SSH_GITHUB = re.compile(r"^git@github\.com:")


def github_zip_urls(repo_url: str) -> list[str]:
    """Map a GitHub repository URL to its codeload archive URLs.

    Raises:
        MaterializationError: If the URL is not a GitHub repository URL.
    """
    url = repo_url.strip()
    if _SSH_GITHUB.match(url):
        url = _SSH_GITHUB.sub("https://github.com/", url)

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise MaterializationError(
            f'Unsupported repository URL: "{repo_url}". '
            "For now, only GitHub HTTPS URLs are supported."
        )
    if parsed.hostname != "github.com":
        raise MaterializationError(
            "Only GitHub repositories are supported via ZIP download "
            f'(got host "{parsed.hostname}").'
        )

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise MaterializationError(
            f'Could not parse GitHub repository from URL "{repo_url}". '
            "Expected https://github.com/<owner>/<repo>."
        )
    owner, repo = parts[0], re.sub(r"\.git$", "", parts[1])

    return [
        f"https://codeload.github.com/{owner}/{repo}/zip/refs/heads/{branch}"
        for branch in DEFAULT_BRANCHES
    ]


def decode_zip_data(zip_data: str) -> bytes:
    """Decode a base64 archive, tolerating a ``data:...;base64,`` prefix."""
    payload = zip_data.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise MaterializationError(f"Invalid base64 ZIP archive: {e}") from e


def extract_zip_bytes(data: bytes, work_dir: Path) -> None:
    """Extract an archive into ``work_dir``.

    A single top-level folder (as produced by GitHub archives) is hoisted so
    the project root ends up directly in ``work_dir``.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise MaterializationError(f"Invalid ZIP archive: {e}") from e

    root = work_dir.resolve()
    with archive:
        for member in archive.infolist():
            target = (root / member.filename).resolve()
            if target != root and root not in target.parents:
                raise MaterializationError(
                    f"ZIP entry escapes the working directory: {member.filename}"
                )
        archive.extractall(root)

    entries = list(root.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        # Move aside first so a child sharing the folder's name cannot collide
        inner = entries[0].rename(root / f".hoist-{entries[0].name}")
        for child in list(inner.iterdir()):
            child.rename(root / child.name)
        inner.rmdir()


class SourceMaterializer:
    """Populates a deployment's working directory with buildable source."""

    def __init__(
        self,
        broadcaster: Broadcaster,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.broadcaster = broadcaster
        self._http_client = http_client
        self.logger = get_logger("materializer")

    async def _download(self, url: str) -> bytes:
        if self._http_client is not None:
            response = await self._http_client.get(url)
        else:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=settings.http_timeout_seconds,
            ) as client:
                response = await client.get(url)

        if response.is_error:
            raise MaterializationError(
                f"Failed to download ZIP archive: {response.status_code} "
                f"{response.reason_phrase} {response.text[:200]}".rstrip()
            )
        return response.content

    async def _download_and_extract(
        self, deployment: Deployment, url: str, work_dir: Path
    ) -> None:
        await self.broadcaster.append_log(
            deployment, f"Downloading ZIP archive from {url}"
        )
        try:
            data = await self._download(url)
        except httpx.HTTPError as e:
            raise MaterializationError(f"Failed to download ZIP archive: {e}") from e
        await asyncio.to_thread(extract_zip_bytes, data, work_dir)

    async def _reset_work_dir(self, work_dir: Path) -> None:
        await asyncio.to_thread(shutil.rmtree, work_dir, True)
        work_dir.mkdir(parents=True, exist_ok=True)

    async def materialize(self, deployment: Deployment) -> Path:
        """Fill ``deployment.work_dir`` with the project source.

        Idempotent for directories that already hold a cloned repository.

        Raises:
            MaterializationError: If the source cannot be resolved.
        """
        if not deployment.work_dir:
            raise MaterializationError("Deployment has no working directory assigned")

        work_dir = Path(deployment.work_dir)
        project = deployment.project

        if (work_dir / GIT_MARKER).exists():
            await self.broadcaster.append_log(
                deployment, f"Reusing prepared repository at {work_dir}"
            )
            return work_dir

        self.logger.info(
            "materializer.started",
            deployment_id=deployment.id,
            source_type=project.source_type.value,
        )
        await self._reset_work_dir(work_dir)

        if project.source_type == SourceType.HTML:
            await self._materialize_html(deployment, work_dir)
        elif project.source_type == SourceType.ZIP:
            await self._materialize_zip(deployment, work_dir)
        else:
            await self._materialize_github(deployment, work_dir)

        return work_dir

    async def _materialize_html(self, deployment: Deployment, work_dir: Path) -> None:
        content = deployment.project.html_content or ""
        if not content.strip():
            raise MaterializationError("HTML source provided without any content.")

        (work_dir / "index.html").write_text(content, encoding="utf-8")
        await self.broadcaster.append_log(
            deployment, "Wrote inline HTML content to index.html"
        )

    async def _materialize_zip(self, deployment: Deployment, work_dir: Path) -> None:
        if deployment.zip_data:
            await self.broadcaster.append_log(
                deployment, "Using uploaded ZIP archive provided by the client."
            )
            data = decode_zip_data(deployment.zip_data)
            await asyncio.to_thread(extract_zip_bytes, data, work_dir)
            return

        identifier = deployment.project.repo_url
        if not re.match(r"^https?://", identifier, re.IGNORECASE):
            raise MaterializationError(
                'For sourceType "zip", repoUrl must be an HTTP(s) URL to a .zip file.'
            )
        await self._download_and_extract(deployment, identifier, work_dir)

    async def _materialize_github(self, deployment: Deployment, work_dir: Path) -> None:
        last_error: Exception | None = None

        for zip_url in github_zip_urls(deployment.project.repo_url):
            try:
                await self._download_and_extract(deployment, zip_url, work_dir)
            except MaterializationError as e:
                last_error = e
                self.logger.warning(
                    "materializer.download_failed",
                    deployment_id=deployment.id,
                    url=zip_url,
                    error=str(e),
                )
                await self.broadcaster.append_log(
                    deployment,
                    f"Failed to download from {zip_url}: {e}",
                    LogLevel.WARNING,
                )
                await self._reset_work_dir(work_dir)
                continue

            await self.broadcaster.append_log(
                deployment, f"Repository materialized from {zip_url}"
            )
            return

        raise MaterializationError(
            "Failed to materialize repository from GitHub ZIP archives. "
            f"Last error: {last_error}"
        )
