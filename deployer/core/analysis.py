"""Pre-deploy repository analysis.

Clones a repository ahead of a deployment so its AI client code can be
inspected; a later deploy that passes the analysis id reuses the clone.
"""

import asyncio
import shutil
from collections import deque
from pathlib import Path
from uuid import uuid4

from deployer.config import settings
from deployer.core.exceptions import AnalysisError
from deployer.core.registry import DeploymentRegistry, get_registry
from deployer.models.deployment import AnalysisSession
from deployer.utils.logging import get_logger
from deployer.utils.strings import strip_ansi

AI_CLIENT_MARKERS = ("@google/genai", "GoogleGenAI", "@google-ai/generativelanguage")
SCRIPT_SUFFIXES = frozenset({".ts", ".tsx", ".js", ".jsx"})

logger = get_logger(__name__)


def find_ai_client_file(repo_root: str | Path) -> tuple[str, str] | None:
    """Breadth-first search (``src/`` first) for a file using a GenAI client.

    Returns ``(posix relative path, content)`` or None.
    """
    root = Path(repo_root)
    queue: deque[Path] = deque([root / "src", root])
    seen: set[Path] = set()

    while queue:
        directory = queue.popleft()
        if directory in seen or not directory.is_dir():
            continue
        seen.add(directory)

        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            continue

        for entry in entries:
            if entry.is_dir():
                if entry.name == "node_modules" or entry.name.startswith("."):
                    continue
                queue.append(entry)
            elif entry.is_file() and entry.suffix in SCRIPT_SUFFIXES:
                try:
                    content = entry.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    continue
                if any(marker in content for marker in AI_CLIENT_MARKERS):
                    return entry.relative_to(root).as_posix(), content

    return None


class AnalysisService:
    """Clones repositories into analysis sessions."""

    def __init__(
        self,
        registry: DeploymentRegistry | None = None,
        builds_root: Path | None = None,
        git_command: str = "git",
    ):
        self.registry = registry or get_registry()
        self.builds_root = builds_root or settings.builds_root
        self.git_command = git_command

    async def _clone(self, repo_url: str, work_dir: Path) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_command,
                "clone",
                "--depth=1",
                "--",
                repo_url,
                str(work_dir),
                cwd=str(self.builds_root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AnalysisError(f"Failed to start git clone: {e}") from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            detail = strip_ansi(stderr.decode("utf-8", errors="replace")).strip()
            raise AnalysisError(
                f"git clone exited with code {process.returncode}",
                {"stderr": detail[-1000:]},
            )

    async def prepare(self, repo_url: str) -> tuple[AnalysisSession, str]:
        """Clone ``repo_url`` and locate its AI client file.

        Returns the registered session and the file's source code.

        Raises:
            AnalysisError: If cloning fails or no AI client file is found.
        """
        analysis_id = uuid4().hex
        work_dir = self.builds_root / f"analysis-{analysis_id}"
        self.builds_root.mkdir(parents=True, exist_ok=True)

        logger.info("analysis.started", analysis_id=analysis_id, repo_url=repo_url)

        try:
            await self._clone(repo_url, work_dir)
            found = await asyncio.to_thread(find_ai_client_file, work_dir)
            if found is None:
                raise AnalysisError(
                    "Could not find any AI client file in the repo "
                    "(looked for @google/genai / GoogleGenAI)."
                )
        except AnalysisError as e:
            logger.warning("analysis.failed", analysis_id=analysis_id, error=e.message)
            await asyncio.to_thread(shutil.rmtree, work_dir, True)
            raise

        file_path, source_code = found
        session = AnalysisSession(
            id=analysis_id,
            work_dir=str(work_dir),
            repo_url=repo_url,
            file_path=file_path,
        )
        await self.registry.add_session(session)

        logger.info("analysis.completed", analysis_id=analysis_id, file_path=file_path)
        return session, source_code


# Singleton instance
_analysis_service: AnalysisService | None = None


def get_analysis_service() -> AnalysisService:
    """Get the analysis service singleton."""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = AnalysisService()
    return _analysis_service
