"""Pytest configuration and fixtures."""

import io
import os
import tempfile
import zipfile
from pathlib import Path

# Settings are read at import time; point them at a scratch directory first
_DATA_DIR = tempfile.mkdtemp(prefix="deployer-tests-")
os.environ["DATA_DIR"] = _DATA_DIR
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["DEPLOY_TARGET"] = "local"
os.environ["APP_ENV"] = "development"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from deployer.core.events import Broadcaster  # noqa: E402
from deployer.core.registry import DeploymentRegistry  # noqa: E402
from deployer.models.deployment import Deployment, ProjectDescriptor, SourceType  # noqa: E402


@pytest.fixture
def broadcaster() -> Broadcaster:
    """Create a fresh broadcaster for tests."""
    return Broadcaster()


@pytest.fixture
def registry() -> DeploymentRegistry:
    """Create a fresh registry for tests."""
    return DeploymentRegistry(ttl_hours=24)


@pytest.fixture
def deployment(tmp_path: Path) -> Deployment:
    """A github deployment with its own working directory."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return Deployment(
        project=ProjectDescriptor(
            name="Demo App",
            repo_url="https://github.com/acme/demo",
            source_type=SourceType.GITHUB,
        ),
        work_dir=str(work_dir),
    )


@pytest.fixture
def make_zip():
    """Build an in-memory ZIP archive from a {path: content} mapping."""

    def _make(files: dict[str, str]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for name, content in files.items():
                archive.writestr(name, content)
        return buffer.getvalue()

    return _make


@pytest.fixture
async def client() -> AsyncClient:
    """Create an async test client with a clean registry."""
    from deployer.core.registry import get_registry
    from deployer.main import app

    registry = get_registry()
    registry._deployments.clear()
    registry._sessions.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    registry._deployments.clear()
    registry._sessions.clear()
