"""Best-effort fixes applied to sources before the build and to output after it."""

from deployer.fixes.base import BaseFix, FixContext
from deployer.fixes.env_placeholder import EnvPlaceholderFix
from deployer.fixes.genai_base_url import GenAIBaseUrlFix
from deployer.fixes.local_preview_assets import LocalPreviewAssetsFix
from deployer.fixes.missing_entry_script import MissingEntryScriptFix
from deployer.fixes.pipeline import FixPipeline


def default_fixes() -> list[BaseFix]:
    """The registered fixes, in the order they run."""
    return [
        EnvPlaceholderFix(),
        MissingEntryScriptFix(),
        GenAIBaseUrlFix(),
        LocalPreviewAssetsFix(),
    ]


__all__ = [
    "BaseFix",
    "FixContext",
    "FixPipeline",
    "EnvPlaceholderFix",
    "MissingEntryScriptFix",
    "GenAIBaseUrlFix",
    "LocalPreviewAssetsFix",
    "default_fixes",
]
