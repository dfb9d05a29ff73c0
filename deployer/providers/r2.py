"""Cloudflare R2 storage provider.

Objects are written through R2's S3-compatible API. Each app keeps a single
``current`` version under ``apps/<slug>/current/``; the edge gateway serves
``<slug>.<apps_root_domain>`` from that prefix.
"""

import asyncio
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deployer.config import settings
from deployer.providers.base import (
    DeployProvider,
    LogFn,
    PublishResult,
    content_type_for,
    iter_files,
)
from deployer.utils.logging import get_logger

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"


def current_prefix(slug: str) -> str:
    return f"apps/{slug}/current"


def thumbnail_key(slug: str) -> str:
    return f"apps/{slug}/thumbnail.png"


def cache_control_for(file_name: str) -> str:
    """HTML/JSON revalidate on every request so new deployments show up."""
    if Path(file_name).suffix.lower() in (".html", ".json"):
        return "no-cache"
    return IMMUTABLE_CACHE


class R2Provider(DeployProvider):
    """Uploads build output to an R2 bucket."""

    name = "r2"

    def __init__(
        self,
        account_id: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        bucket: str | None = None,
        apps_root_domain: str | None = None,
        client: Any = None,
    ):
        self.account_id = settings.effective_r2_account_id if account_id is None else account_id
        self.access_key_id = settings.r2_access_key_id if access_key_id is None else access_key_id
        self.secret_access_key = (
            settings.r2_secret_access_key if secret_access_key is None else secret_access_key
        )
        self.bucket = settings.r2_bucket_name if bucket is None else bucket
        self.apps_root_domain = apps_root_domain or settings.apps_root_domain
        self._client = client
        self.logger = get_logger("r2")

    def _ensure_config(self) -> None:
        if not self.account_id:
            raise self.error(
                "R2 account id not configured. Please set R2_ACCOUNT_ID or CLOUDFLARE_ACCOUNT_ID."
            )
        if not self.bucket:
            raise self.error("R2 bucket name not configured. Please set R2_BUCKET_NAME.")
        if not self.access_key_id or not self.secret_access_key:
            raise self.error(
                "R2 credentials not configured. Please set R2_ACCESS_KEY_ID and "
                "R2_SECRET_ACCESS_KEY."
            )

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=f"https://{self.account_id}.r2.cloudflarestorage.com",
                region_name="auto",
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
            )
        return self._client

    def _clear_prefix(self, prefix: str) -> int:
        removed = 0
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys = [obj["Key"] for obj in page.get("Contents", []) if obj.get("Key")]
            if not keys:
                continue
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
            removed += len(keys)
        return removed

    def _put_file(self, key: str, path: Path) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=path.read_bytes(),
            ContentType=content_type_for(path.name, with_charset=True),
            CacheControl=cache_control_for(path.name),
        )

    async def publish(self, slug: str, output_dir: Path, log: LogFn) -> PublishResult:
        self._ensure_config()
        prefix = current_prefix(slug)

        await log(f'Deploying static assets to R2 bucket "{self.bucket}" under prefix "{prefix}"')

        try:
            removed = await asyncio.to_thread(self._clear_prefix, f"{prefix}/")
            if removed:
                await log(f'Cleared {removed} objects from R2 prefix "{prefix}/"')

            for relative_path, path in iter_files(Path(output_dir)):
                key = f"{prefix}/{relative_path}"
                await log(f"Uploading {relative_path} -> r2://{self.bucket}/{key}")
                await asyncio.to_thread(self._put_file, key, path)
        except (BotoCoreError, ClientError) as e:
            self.logger.error("r2.publish_failed", slug=slug, error=str(e))
            raise self.error(f"R2 upload failed: {e}") from e

        public_url = f"https://{slug}.{self.apps_root_domain}/"
        await log(f"R2 deployment completed. App will be served at {public_url}")
        return PublishResult(public_url=public_url, provider_url=f"r2://{prefix}")

    async def upload_thumbnail(self, slug: str, data: bytes) -> str:
        """Store a PNG thumbnail for an app. Returns the object key."""
        self._ensure_config()
        key = thumbnail_key(slug)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType="image/png",
                CacheControl="no-cache",
            )
        except (BotoCoreError, ClientError) as e:
            raise self.error(f"Failed to upload thumbnail: {e}") from e
        return key
