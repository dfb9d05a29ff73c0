"""Cloudflare Pages direct upload.

Follows the same asset flow as wrangler: hash every file, ask the asset
store which hashes are missing, upload those in one batch and then create a
deployment whose manifest maps ``/path`` to hash.
"""

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from blake3 import blake3

from deployer.config import settings
from deployer.models.deployment import LogLevel
from deployer.providers.base import (
    DeployProvider,
    LogFn,
    PublishResult,
    content_type_for,
    iter_files,
)
from deployer.utils.logging import get_logger

API_BASE = "https://api.cloudflare.com/client/v4"


@dataclass(frozen=True)
class StaticAsset:
    relative_path: str
    content_type: str
    hash: str
    data: bytes


def asset_hash(data: bytes, extension: str) -> str:
    """Pages asset hash: blake3 of base64(contents) + extension, 32 hex chars."""
    payload = base64.b64encode(data).decode("ascii") + extension
    return blake3(payload.encode("utf-8")).hexdigest()[:32]


def collect_assets(root: Path) -> list[StaticAsset]:
    assets = []
    for relative_path, path in iter_files(root):
        data = path.read_bytes()
        assets.append(
            StaticAsset(
                relative_path=relative_path,
                content_type=content_type_for(path.name),
                hash=asset_hash(data, path.suffix.lstrip(".")),
                data=data,
            )
        )
    return assets


def pages_project_name(slug: str, prefix: str | None = None) -> str:
    prefix = prefix or settings.cloudflare_pages_project_prefix or "deploy-your-app"
    return f"{prefix}-{slug}".lower()


def _describe(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase} {response.text[:500]}".rstrip()


class CloudflarePagesProvider(DeployProvider):
    """Publishes build output to a Cloudflare Pages project per slug."""

    name = "cloudflare"

    def __init__(
        self,
        account_id: str | None = None,
        api_token: str | None = None,
        project_prefix: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.account_id = settings.cloudflare_account_id if account_id is None else account_id
        self.api_token = settings.cloudflare_api_token if api_token is None else api_token
        self.project_prefix = project_prefix or settings.cloudflare_pages_project_prefix
        self._http_client = http_client
        self.logger = get_logger("cloudflare_pages")

    @property
    def _auth(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}"}

    def _project_url(self, project_name: str) -> str:
        return f"{API_BASE}/accounts/{self.account_id}/pages/projects/{project_name}"

    async def publish(self, slug: str, output_dir: Path, log: LogFn) -> PublishResult:
        if not self.account_id or not self.api_token:
            raise self.error(
                "Cloudflare account id/token not configured. Please set "
                "CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN in your environment."
            )

        project_name = pages_project_name(slug, self.project_prefix)
        await log(
            f'Preparing Cloudflare Pages deployment for project "{project_name}" '
            f"from {output_dir}"
        )

        if self._http_client is not None:
            await self._publish(self._http_client, project_name, Path(output_dir), log)
        else:
            async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                await self._publish(client, project_name, Path(output_dir), log)

        url = f"https://{project_name}.pages.dev/"
        await log(f"Cloudflare Pages deployment successful: {url}")
        return PublishResult(public_url=url, provider_url=url, project_name=project_name)

    async def _publish(
        self,
        client: httpx.AsyncClient,
        project_name: str,
        output_dir: Path,
        log: LogFn,
    ) -> None:
        try:
            await self._ensure_project(client, project_name, log)
            manifest = await self._upload_assets(client, project_name, output_dir, log)
            await self._create_deployment(client, project_name, manifest, log)
        except httpx.HTTPError as e:
            raise self.error(f"Cloudflare Pages request failed: {e}") from e

    async def _ensure_project(
        self, client: httpx.AsyncClient, project_name: str, log: LogFn
    ) -> None:
        response = await client.get(self._project_url(project_name), headers=self._auth)
        if response.is_success:
            return
        if response.status_code != 404:
            raise self.error(
                f'Cloudflare API error while checking project "{project_name}": '
                f"{_describe(response)}"
            )

        await log(f'Creating Cloudflare Pages project "{project_name}" via API')
        response = await client.post(
            f"{API_BASE}/accounts/{self.account_id}/pages/projects",
            headers=self._auth,
            json={
                "name": project_name,
                "production_branch": "main",
                "build_config": {"build_command": "", "destination_dir": "", "root_dir": ""},
            },
        )
        if response.is_error:
            raise self.error(
                f'Cloudflare API error while creating project "{project_name}": '
                f"{_describe(response)}"
            )

    async def _upload_token(self, client: httpx.AsyncClient, project_name: str) -> str:
        response = await client.get(
            f"{self._project_url(project_name)}/upload-token", headers=self._auth
        )
        if response.is_error:
            raise self.error(
                f"Cloudflare API error while fetching upload token: {_describe(response)}"
            )

        data: Any = response.json()
        jwt = None
        if isinstance(data, dict):
            result = data.get("result")
            jwt = data.get("jwt") or (result.get("jwt") if isinstance(result, dict) else None)
        if not isinstance(jwt, str) or not jwt:
            raise self.error(f'Cloudflare upload-token response missing "jwt" (raw={data})')
        return jwt

    async def _upload_assets(
        self,
        client: httpx.AsyncClient,
        project_name: str,
        output_dir: Path,
        log: LogFn,
    ) -> dict[str, str]:
        assets = collect_assets(output_dir)
        if not assets:
            raise self.error(
                f'No files found in build output directory "{output_dir}" '
                "to upload to Cloudflare Pages."
            )
        await log(f"Preparing to upload {len(assets)} assets to Cloudflare Pages...")

        jwt = await self._upload_token(client, project_name)
        jwt_auth = {"Authorization": f"Bearer {jwt}"}
        hashes = [asset.hash for asset in assets]

        response = await client.post(
            f"{API_BASE}/pages/assets/check-missing",
            headers=jwt_auth,
            json={"hashes": hashes},
        )
        if response.is_error:
            raise self.error(
                f"Cloudflare API error while checking missing assets: {_describe(response)}"
            )
        data: Any = response.json()
        if isinstance(data, dict):
            data = data.get("result")
        missing = set(data) if isinstance(data, list) else set()

        to_upload = [asset for asset in assets if asset.hash in missing]
        await log(
            f"Assets to upload: {len(to_upload)} "
            f"(skipping {len(assets) - len(to_upload)} already present)"
        )

        if to_upload:
            payload = [
                {
                    "key": asset.hash,
                    "value": base64.b64encode(asset.data).decode("ascii"),
                    "metadata": {"contentType": asset.content_type},
                    "base64": True,
                }
                for asset in to_upload
            ]
            response = await client.post(
                f"{API_BASE}/pages/assets/upload", headers=jwt_auth, json=payload
            )
            if response.is_error:
                raise self.error(
                    f"Cloudflare API error while uploading assets: {_describe(response)}"
                )

        try:
            response = await client.post(
                f"{API_BASE}/pages/assets/upsert-hashes",
                headers=jwt_auth,
                json={"hashes": hashes},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.warning("cloudflare_pages.upsert_failed", error=str(e))
            await log(
                "Warning: failed to upsert asset hashes; future uploads may be slower.",
                LogLevel.WARNING,
            )

        return {f"/{asset.relative_path}": asset.hash for asset in assets}

    async def _create_deployment(
        self,
        client: httpx.AsyncClient,
        project_name: str,
        manifest: dict[str, str],
        log: LogFn,
    ) -> None:
        deploy_url = f"{self._project_url(project_name)}/deployments"
        await log(f"Uploading deployment to Cloudflare Pages via API ({deploy_url})")

        response = await client.post(
            deploy_url,
            headers=self._auth,
            files={"manifest": (None, json.dumps(manifest))},
        )
        if response.is_error:
            raise self.error(
                f"Cloudflare API error while creating deployment: {_describe(response)}"
            )
