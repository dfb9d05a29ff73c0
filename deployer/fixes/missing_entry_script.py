"""Inject a module entry script into index.html when one is missing."""

import re

from deployer.fixes.base import BaseFix, FixContext

MODULE_SCRIPT = re.compile(r"<script[^>]+type=[\"']module[\"'][^>]*src=", re.IGNORECASE)
INDEX_REFERENCE = re.compile(r"src=[\"']\.?/index\.[tj]sx?[\"']", re.IGNORECASE)
ROOT_DIV = re.compile(r"<div[^>]+id=[\"']root[\"'][^>]*>", re.IGNORECASE)

SCRIPT_TAG = '    <script type="module" src="./index.tsx"></script>\n'


class MissingEntryScriptFix(BaseFix):
    """Vite-style apps exported without their entry <script> tag."""

    @property
    def id(self) -> str:
        return "missing-html-entry-script"

    @property
    def description(self) -> str:
        return (
            'Inject <script type="module" src="./index.tsx"> into index.html when an '
            "index.tsx entry exists but no module script is present."
        )

    async def detect(self, ctx: FixContext) -> bool:
        if ctx.is_post_build:
            return False

        html_path = ctx.work_dir / "index.html"
        if not html_path.is_file() or not (ctx.work_dir / "index.tsx").is_file():
            return False

        html = html_path.read_text(encoding="utf-8", errors="replace")
        if MODULE_SCRIPT.search(html) and INDEX_REFERENCE.search(html):
            return False
        return ROOT_DIV.search(html) is not None

    async def apply(self, ctx: FixContext) -> None:
        html_path = ctx.work_dir / "index.html"
        html = html_path.read_text(encoding="utf-8", errors="replace")

        body_close = html.rfind("</body>")
        if body_close == -1:
            updated = html + "\n" + SCRIPT_TAG
        else:
            updated = html[:body_close] + SCRIPT_TAG + html[body_close:]

        html_path.write_text(updated, encoding="utf-8")
