"""Ensure a GEMINI_API_KEY placeholder exists in .env."""

import re

from deployer.fixes.base import BaseFix, FixContext

GEMINI_KEY_PATTERN = re.compile(r"^GEMINI_API_KEY\s*=", re.MULTILINE)

PLACEHOLDER_BLOCK = (
    "# Placeholder injected by the deployer\n"
    "GEMINI_API_KEY=xxx\n"
)


class EnvPlaceholderFix(BaseFix):
    """Builds that read GEMINI_API_KEY at build time fail without it."""

    @property
    def id(self) -> str:
        return "add-gemini-env-placeholder"

    @property
    def description(self) -> str:
        return "Ensure .env exists with a placeholder GEMINI_API_KEY=xxx for builds."

    async def detect(self, ctx: FixContext) -> bool:
        if ctx.is_post_build:
            return False
        if not (ctx.work_dir / "package.json").is_file():
            return False

        env_path = ctx.work_dir / ".env"
        if not env_path.exists():
            return True
        content = env_path.read_text(encoding="utf-8", errors="replace")
        return GEMINI_KEY_PATTERN.search(content) is None

    async def apply(self, ctx: FixContext) -> None:
        env_path = ctx.work_dir / ".env"

        if not env_path.exists():
            env_path.write_text(PLACEHOLDER_BLOCK, encoding="utf-8")
            return

        content = env_path.read_text(encoding="utf-8", errors="replace")
        env_path.write_text(content.rstrip() + "\n" + PLACEHOLDER_BLOCK, encoding="utf-8")
