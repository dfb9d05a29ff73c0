"""Make built asset paths relative for local previews under /apps/<slug>/."""

import re

from deployer.config import settings
from deployer.fixes.base import BaseFix, FixContext
from deployer.models.deployment import DeployTarget

ABSOLUTE_ASSET = re.compile(
    r"(?:src|href)=[\"']/assets/|url\(\s*[\"']?/assets/", re.IGNORECASE
)
ATTR_ASSET = re.compile(r"(src|href)=([\"'])/(assets/[^\"']*)\2", re.IGNORECASE)
CSS_URL_ASSET = re.compile(r"url\(\s*([\"']?)/(assets/[^\"')]*)\1\s*\)", re.IGNORECASE)


def relativize_assets(html: str) -> str:
    """Rewrite ``/assets/...`` references to ``./assets/...``."""
    updated = ATTR_ASSET.sub(r"\1=\2./\3\2", html)
    return CSS_URL_ASSET.sub(r"url(\1./\2\1)", updated)


class LocalPreviewAssetsFix(BaseFix):
    """Only applies outside production and for the local provider."""

    def __init__(self, is_production: bool | None = None):
        self.is_production = settings.is_production if is_production is None else is_production

    @property
    def id(self) -> str:
        return "adjust-dist-assets-for-local-preview"

    @property
    def description(self) -> str:
        return (
            "Rewrite absolute /assets/... paths in dist/index.html to ./assets/... "
            "for local preview under /apps/<slug>."
        )

    async def detect(self, ctx: FixContext) -> bool:
        if self.is_production or ctx.dist_dir is None:
            return False
        if ctx.deploy_target != DeployTarget.LOCAL:
            return False

        index_path = ctx.dist_dir / "index.html"
        if not index_path.is_file():
            return False
        html = index_path.read_text(encoding="utf-8", errors="replace")
        return ABSOLUTE_ASSET.search(html) is not None

    async def apply(self, ctx: FixContext) -> None:
        index_path = ctx.dist_dir / "index.html"
        html = index_path.read_text(encoding="utf-8", errors="replace")
        index_path.write_text(relativize_assets(html), encoding="utf-8")
