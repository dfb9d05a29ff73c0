"""Unit tests for deploy providers."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from blake3 import blake3
from botocore.exceptions import ClientError

from deployer.core.exceptions import ProviderError
from deployer.models.deployment import DeployTarget, LogLevel, ProjectDescriptor
from deployer.providers import (
    CloudflarePagesProvider,
    LocalStaticProvider,
    R2Provider,
    get_provider,
    select_target,
)
from deployer.providers.base import content_type_for, iter_files
from deployer.providers.cloudflare_pages import API_BASE, asset_hash, pages_project_name
from deployer.providers.r2 import IMMUTABLE_CACHE, cache_control_for


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """A small build output with a stray .git directory."""
    out = tmp_path / "dist"
    (out / "assets").mkdir(parents=True)
    (out / ".git").mkdir()
    (out / "index.html").write_text("<h1>hi</h1>")
    (out / "assets" / "app.js").write_text("console.log(1)")
    (out / ".git" / "HEAD").write_text("ref: refs/heads/main")
    return out


@pytest.fixture
def log() -> AsyncMock:
    return AsyncMock()


class TestHelpers:
    """Tests for shared provider helpers."""

    def test_content_types(self):
        assert content_type_for("index.html") == "text/html"
        assert content_type_for("app.JS", with_charset=True) == (
            "application/javascript; charset=utf-8"
        )
        assert content_type_for("logo.png", with_charset=True) == "image/png"
        assert content_type_for("data.bin") == "application/octet-stream"

    def test_iter_files_skips_git(self, output_dir):
        assert [rel for rel, _ in iter_files(output_dir)] == ["assets/app.js", "index.html"]

    def test_cache_control(self):
        assert cache_control_for("index.html") == "no-cache"
        assert cache_control_for("manifest.json") == "no-cache"
        assert cache_control_for("app.js") == IMMUTABLE_CACHE

    def test_select_target(self):
        assert select_target(ProjectDescriptor(name="a", deploy_target="r2")) == DeployTarget.R2
        assert select_target(ProjectDescriptor(name="a")) == DeployTarget.LOCAL
        assert isinstance(get_provider(DeployTarget.LOCAL), LocalStaticProvider)


class TestLocalStaticProvider:
    """Tests for LocalStaticProvider."""

    @pytest.mark.asyncio
    async def test_publish_copies_output(self, tmp_path, output_dir, log):
        provider = LocalStaticProvider(static_root=tmp_path / "apps")

        result = await provider.publish("demo", output_dir, log)

        target = tmp_path / "apps" / "demo"
        assert result.public_url == "/apps/demo/"
        assert (target / "index.html").read_text() == "<h1>hi</h1>"
        assert (target / "assets" / "app.js").is_file()
        assert not (target / ".git").exists()

    @pytest.mark.asyncio
    async def test_republish_replaces_previous_output(self, tmp_path, output_dir, log):
        provider = LocalStaticProvider(static_root=tmp_path / "apps")
        stale = tmp_path / "apps" / "demo" / "old.js"
        stale.parent.mkdir(parents=True)
        stale.write_text("old")

        await provider.publish("demo", output_dir, log)

        assert not stale.exists()

    @pytest.mark.asyncio
    async def test_rejects_publishing_onto_itself(self, tmp_path, log):
        apps = tmp_path / "apps"
        (apps / "demo").mkdir(parents=True)

        with pytest.raises(ProviderError):
            await LocalStaticProvider(static_root=apps).publish("demo", apps / "demo", log)


class TestCloudflarePagesProvider:
    """Tests for CloudflarePagesProvider against a mocked API."""

    PROJECT = "deploy-your-app-demo"

    @pytest.fixture
    def provider(self) -> CloudflarePagesProvider:
        return CloudflarePagesProvider(
            account_id="acct",
            api_token="api-token",
            project_prefix="deploy-your-app",
            http_client=httpx.AsyncClient(),
        )

    def _project_path(self) -> str:
        return f"/accounts/acct/pages/projects/{self.PROJECT}"

    def test_asset_hash(self):
        # base64(b"hi") == "aGk="
        expected = blake3(b"aGk=html").hexdigest()[:32]
        assert asset_hash(b"hi", "html") == expected
        assert len(expected) == 32
        assert asset_hash(b"hi", "js") != expected

    def test_project_name(self):
        assert pages_project_name("Demo", "Prefix") == "prefix-demo"

    @pytest.mark.asyncio
    async def test_full_publish_creates_project(self, provider, output_dir, log):
        index_hash = asset_hash(b"<h1>hi</h1>", "html")
        js_hash = asset_hash(b"console.log(1)", "js")

        async with respx.mock(base_url=API_BASE) as respx_mock:
            respx_mock.get(self._project_path()).mock(return_value=httpx.Response(404))
            create = respx_mock.post("/accounts/acct/pages/projects").mock(
                return_value=httpx.Response(200, json={"success": True})
            )
            respx_mock.get(f"{self._project_path()}/upload-token").mock(
                return_value=httpx.Response(200, json={"result": {"jwt": "upload-jwt"}})
            )
            check = respx_mock.post("/pages/assets/check-missing").mock(
                return_value=httpx.Response(200, json={"result": [index_hash]})
            )
            upload = respx_mock.post("/pages/assets/upload").mock(
                return_value=httpx.Response(200, json={"success": True})
            )
            respx_mock.post("/pages/assets/upsert-hashes").mock(
                return_value=httpx.Response(200, json={"success": True})
            )
            deploy = respx_mock.post(f"{self._project_path()}/deployments").mock(
                return_value=httpx.Response(200, json={"success": True})
            )

            result = await provider.publish("demo", output_dir, log)

        assert result.public_url == f"https://{self.PROJECT}.pages.dev/"
        assert result.project_name == self.PROJECT
        assert json.loads(create.calls.last.request.content)["name"] == self.PROJECT

        check_request = check.calls.last.request
        assert check_request.headers["Authorization"] == "Bearer upload-jwt"
        assert sorted(json.loads(check_request.content)["hashes"]) == sorted(
            [index_hash, js_hash]
        )

        uploaded = json.loads(upload.calls.last.request.content)
        assert [item["key"] for item in uploaded] == [index_hash]
        assert uploaded[0]["metadata"] == {"contentType": "text/html"}

        deploy_request = deploy.calls.last.request
        assert deploy_request.headers["Authorization"] == "Bearer api-token"
        body = deploy_request.read()
        assert f'"/index.html": "{index_hash}"'.encode() in body
        assert f'"/assets/app.js": "{js_hash}"'.encode() in body
        assert b".git" not in body

    @pytest.mark.asyncio
    async def test_existing_project_and_nothing_missing(self, provider, output_dir, log):
        async with respx.mock(base_url=API_BASE, assert_all_called=False) as respx_mock:
            respx_mock.get(self._project_path()).mock(return_value=httpx.Response(200))
            create = respx_mock.post("/accounts/acct/pages/projects")
            respx_mock.get(f"{self._project_path()}/upload-token").mock(
                return_value=httpx.Response(200, json={"jwt": "upload-jwt"})
            )
            respx_mock.post("/pages/assets/check-missing").mock(
                return_value=httpx.Response(200, json=[])
            )
            upload = respx_mock.post("/pages/assets/upload")
            respx_mock.post("/pages/assets/upsert-hashes").mock(
                return_value=httpx.Response(500)
            )
            respx_mock.post(f"{self._project_path()}/deployments").mock(
                return_value=httpx.Response(200)
            )

            await provider.publish("demo", output_dir, log)

        assert not create.called
        assert not upload.called
        levels = [call.args[1] for call in log.await_args_list if len(call.args) > 1]
        assert LogLevel.WARNING in levels

    @pytest.mark.asyncio
    async def test_api_error_raises(self, provider, output_dir, log):
        async with respx.mock(base_url=API_BASE) as respx_mock:
            respx_mock.get(self._project_path()).mock(
                return_value=httpx.Response(500, text="upstream down")
            )

            with pytest.raises(ProviderError) as exc_info:
                await provider.publish("demo", output_dir, log)

        assert "checking project" in exc_info.value.message
        assert "upstream down" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_credentials(self, output_dir, log):
        provider = CloudflarePagesProvider(account_id="", api_token="")

        with pytest.raises(ProviderError) as exc_info:
            await provider.publish("demo", output_dir, log)

        assert "CLOUDFLARE_ACCOUNT_ID" in exc_info.value.message
        log.assert_not_called()


class TestR2Provider:
    """Tests for R2Provider with a stubbed S3 client."""

    @pytest.fixture
    def s3(self) -> MagicMock:
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "apps/demo/current/old.js"}]},
            {},
        ]
        return client

    @pytest.fixture
    def provider(self, s3) -> R2Provider:
        return R2Provider(
            account_id="acct",
            access_key_id="key",
            secret_access_key="secret",
            bucket="apps-bucket",
            apps_root_domain="apps.test",
            client=s3,
        )

    @pytest.mark.asyncio
    async def test_publish_replaces_current_prefix(self, provider, s3, output_dir, log):
        result = await provider.publish("demo", output_dir, log)

        assert result.public_url == "https://demo.apps.test/"
        assert result.provider_url == "r2://apps/demo/current"

        s3.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="apps-bucket", Prefix="apps/demo/current/"
        )
        s3.delete_objects.assert_called_once_with(
            Bucket="apps-bucket",
            Delete={"Objects": [{"Key": "apps/demo/current/old.js"}], "Quiet": True},
        )

        puts = {call.kwargs["Key"]: call.kwargs for call in s3.put_object.call_args_list}
        assert set(puts) == {"apps/demo/current/assets/app.js", "apps/demo/current/index.html"}
        assert puts["apps/demo/current/index.html"]["ContentType"] == "text/html; charset=utf-8"
        assert puts["apps/demo/current/index.html"]["CacheControl"] == "no-cache"
        assert puts["apps/demo/current/assets/app.js"]["CacheControl"] == IMMUTABLE_CACHE
        assert puts["apps/demo/current/index.html"]["Body"] == b"<h1>hi</h1>"

        messages = [call.args[0] for call in log.await_args_list]
        assert 'Cleared 1 objects from R2 prefix "apps/demo/current/"' in messages

    @pytest.mark.asyncio
    async def test_client_error_becomes_provider_error(self, provider, s3, output_dir, log):
        s3.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.publish("demo", output_dir, log)

        assert exc_info.value.provider == "r2"
        assert "AccessDenied" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_upload_thumbnail(self, provider, s3):
        key = await provider.upload_thumbnail("demo", b"\x89PNG")

        assert key == "apps/demo/thumbnail.png"
        assert s3.put_object.call_args.kwargs["ContentType"] == "image/png"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"account_id": ""}, "R2 account id"),
            ({"bucket": ""}, "R2 bucket name"),
            ({"secret_access_key": ""}, "R2 credentials"),
        ],
    )
    async def test_missing_configuration(self, s3, output_dir, log, overrides, message):
        options = {
            "account_id": "acct",
            "access_key_id": "key",
            "secret_access_key": "secret",
            "bucket": "apps-bucket",
            "client": s3,
            **overrides,
        }

        with pytest.raises(ProviderError) as exc_info:
            await R2Provider(**options).publish("demo", output_dir, log)

        assert message in exc_info.value.message
        s3.put_object.assert_not_called()
