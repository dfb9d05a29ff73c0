"""Local static hosting under the /apps mount."""

import asyncio
import shutil
from pathlib import Path

from deployer.config import settings
from deployer.providers.base import EXCLUDED_NAMES, DeployProvider, LogFn, PublishResult


class LocalStaticProvider(DeployProvider):
    """Copies the build output into ``<static_root>/<slug>/``."""

    name = "local"

    def __init__(self, static_root: Path | None = None):
        self.static_root = static_root or settings.static_root

    def _replace(self, output_dir: Path, target: Path) -> None:
        shutil.rmtree(target, ignore_errors=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(output_dir, target, ignore=shutil.ignore_patterns(*EXCLUDED_NAMES))

    async def publish(self, slug: str, output_dir: Path, log: LogFn) -> PublishResult:
        target = self.static_root / slug
        if target.resolve() == Path(output_dir).resolve():
            raise self.error(f"Build output already lives at {target}")

        try:
            await asyncio.to_thread(self._replace, Path(output_dir), target)
        except OSError as e:
            raise self.error(f"Failed to copy build output to {target}: {e}") from e

        public_url = f"/apps/{slug}/"
        await log(f"Copied build output to {target}")
        return PublishResult(public_url=public_url, provider_url=public_url)
