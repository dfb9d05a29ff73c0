"""Unit tests for the source materializer."""

import base64
from pathlib import Path

import httpx
import pytest
import respx

from deployer.core.exceptions import MaterializationError
from deployer.core.materializer import (
    SourceMaterializer,
    decode_zip_data,
    extract_zip_bytes,
    github_zip_urls,
)
from deployer.models.deployment import Deployment, LogLevel, ProjectDescriptor, SourceType

MAIN_URL = "https://codeload.github.com/acme/demo/zip/refs/heads/main"
MASTER_URL = "https://codeload.github.com/acme/demo/zip/refs/heads/master"


def _deployment(work_dir: Path, **project) -> Deployment:
    return Deployment(project=ProjectDescriptor(name="demo", **project), work_dir=str(work_dir))


class TestGithubZipUrls:
    """Tests for github_zip_urls."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/demo",
            "https://github.com/acme/demo.git",
            "https://github.com/acme/demo/tree/main",
            "git@github.com:acme/demo.git",
        ],
    )
    def test_supported_forms(self, url):
        assert github_zip_urls(url) == [MAIN_URL, MASTER_URL]

    @pytest.mark.parametrize(
        "url",
        ["https://gitlab.com/acme/demo", "https://github.com/acme", "ftp://github.com/a/b"],
    )
    def test_rejected_forms(self, url):
        with pytest.raises(MaterializationError):
            github_zip_urls(url)


class TestZipHelpers:
    """Tests for archive decoding and extraction."""

    def test_decode_tolerates_data_url_prefix(self, make_zip):
        data = make_zip({"index.html": "hi"})
        encoded = base64.b64encode(data).decode()

        assert decode_zip_data(encoded) == data
        assert decode_zip_data(f"data:application/zip;base64,{encoded}") == data

    def test_single_top_level_folder_is_hoisted(self, tmp_path, make_zip):
        data = make_zip({"demo-main/package.json": "{}", "demo-main/src/main.ts": "x"})

        extract_zip_bytes(data, tmp_path)

        assert (tmp_path / "package.json").is_file()
        assert (tmp_path / "src" / "main.ts").is_file()
        assert not (tmp_path / "demo-main").exists()

    def test_hoist_with_same_named_child(self, tmp_path, make_zip):
        data = make_zip({"app/app/index.js": "x"})

        extract_zip_bytes(data, tmp_path)

        assert (tmp_path / "app" / "index.js").is_file()

    def test_multiple_roots_are_kept(self, tmp_path, make_zip):
        extract_zip_bytes(make_zip({"index.html": "a", "assets/app.js": "b"}), tmp_path)

        assert (tmp_path / "index.html").is_file()
        assert (tmp_path / "assets" / "app.js").is_file()

    def test_zip_slip_rejected(self, tmp_path, make_zip):
        work_dir = tmp_path / "work"
        work_dir.mkdir()

        with pytest.raises(MaterializationError):
            extract_zip_bytes(make_zip({"../evil.txt": "x"}), work_dir)

        assert not (tmp_path / "evil.txt").exists()

    def test_invalid_archive(self, tmp_path):
        with pytest.raises(MaterializationError):
            extract_zip_bytes(b"not a zip", tmp_path)


class TestSourceMaterializer:
    """Tests for SourceMaterializer.materialize."""

    @pytest.fixture
    def materializer(self, broadcaster) -> SourceMaterializer:
        return SourceMaterializer(broadcaster)

    @pytest.mark.asyncio
    async def test_inline_html(self, materializer, tmp_path):
        deployment = _deployment(
            tmp_path / "w", source_type=SourceType.HTML, html_content="<h1>Hi</h1>"
        )

        work_dir = await materializer.materialize(deployment)

        assert (work_dir / "index.html").read_text() == "<h1>Hi</h1>"
        assert deployment.logs[-1].message == "Wrote inline HTML content to index.html"

    @pytest.mark.asyncio
    async def test_empty_html_fails(self, materializer, tmp_path):
        deployment = _deployment(tmp_path / "w", source_type=SourceType.HTML, html_content="  ")

        with pytest.raises(MaterializationError):
            await materializer.materialize(deployment)

    @pytest.mark.asyncio
    async def test_uploaded_zip(self, materializer, tmp_path, make_zip):
        deployment = _deployment(tmp_path / "w", source_type=SourceType.ZIP)
        deployment.zip_data = base64.b64encode(make_zip({"site/index.html": "ok"})).decode()

        work_dir = await materializer.materialize(deployment)

        assert (work_dir / "index.html").read_text() == "ok"

    @pytest.mark.asyncio
    async def test_zip_without_data_or_url_fails(self, materializer, tmp_path):
        deployment = _deployment(tmp_path / "w", source_type=SourceType.ZIP, repo_url="demo.zip")

        with pytest.raises(MaterializationError):
            await materializer.materialize(deployment)

    @pytest.mark.asyncio
    @respx.mock
    async def test_zip_downloaded_from_url(self, materializer, tmp_path, make_zip):
        url = "https://files.example.com/site.zip"
        respx.get(url).mock(return_value=httpx.Response(200, content=make_zip({"index.html": "x"})))
        deployment = _deployment(tmp_path / "w", source_type=SourceType.ZIP, repo_url=url)

        work_dir = await materializer.materialize(deployment)

        assert (work_dir / "index.html").is_file()

    @pytest.mark.asyncio
    @respx.mock
    async def test_github_falls_back_to_master(self, materializer, tmp_path, make_zip):
        respx.get(MAIN_URL).mock(return_value=httpx.Response(404))
        respx.get(MASTER_URL).mock(
            return_value=httpx.Response(200, content=make_zip({"demo-master/index.html": "m"}))
        )
        deployment = _deployment(tmp_path / "w", repo_url="https://github.com/acme/demo")

        work_dir = await materializer.materialize(deployment)

        assert (work_dir / "index.html").read_text() == "m"
        warnings = [log.message for log in deployment.logs if log.level == LogLevel.WARNING]
        assert len(warnings) == 1
        assert MAIN_URL in warnings[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_github_all_candidates_fail(self, materializer, tmp_path):
        respx.get(MAIN_URL).mock(return_value=httpx.Response(404))
        respx.get(MASTER_URL).mock(return_value=httpx.Response(500))
        deployment = _deployment(tmp_path / "w", repo_url="https://github.com/acme/demo")

        with pytest.raises(MaterializationError) as exc_info:
            await materializer.materialize(deployment)

        assert "Last error" in exc_info.value.message
        assert "500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_prepared_repository_is_reused(self, materializer, tmp_path):
        work_dir = tmp_path / "analysis"
        (work_dir / ".git").mkdir(parents=True)
        (work_dir / "package.json").write_text("{}")
        deployment = _deployment(work_dir, repo_url="https://github.com/acme/demo")

        result = await materializer.materialize(deployment)

        assert result == work_dir
        assert (work_dir / "package.json").is_file()
        assert deployment.logs[-1].message == f"Reusing prepared repository at {work_dir}"

    @pytest.mark.asyncio
    async def test_work_dir_is_reset(self, materializer, tmp_path):
        work_dir = tmp_path / "w"
        work_dir.mkdir()
        (work_dir / "stale.txt").write_text("old")
        deployment = _deployment(work_dir, source_type=SourceType.HTML, html_content="<p>x</p>")

        await materializer.materialize(deployment)

        assert not (work_dir / "stale.txt").exists()
