"""Package manager detection for JavaScript projects."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

PackageManagerName = Literal["npm", "pnpm", "yarn", "bun"]

KNOWN_MANAGERS: tuple[str, ...] = ("npm", "pnpm", "yarn", "bun")

# Checked in order; the first lockfile present wins
LOCKFILE_CANDIDATES: tuple[tuple[str, str], ...] = (
    ("pnpm", "pnpm-lock.yaml"),
    ("yarn", "yarn.lock"),
    ("bun", "bun.lockb"),
    ("npm", "package-lock.json"),
    ("npm", "npm-shrinkwrap.json"),
)

DEFAULT_MANAGER: PackageManagerName = "npm"


@dataclass(frozen=True)
class PackageManagerInfo:
    """Chosen package manager and why it was chosen."""

    name: PackageManagerName
    reason: str


def _from_manifest(work_dir: Path) -> PackageManagerInfo | None:
    try:
        package = json.loads((work_dir / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None

    if not isinstance(package, dict):
        return None
    field = package.get("packageManager")
    if not isinstance(field, str):
        return None

    name = field.split("@", 1)[0].strip()
    if name in KNOWN_MANAGERS:
        return PackageManagerInfo(name=name, reason=f"packageManager field: {field}")
    return None


def detect_package_manager(work_dir: str | Path) -> PackageManagerInfo:
    """Pick the install/build toolchain for a project directory.

    Priority: ``packageManager`` field in package.json, then lockfiles in a
    fixed order, then npm. Never raises.
    """
    root = Path(work_dir)

    info = _from_manifest(root)
    if info is not None:
        return info

    for name, lockfile in LOCKFILE_CANDIDATES:
        try:
            if (root / lockfile).exists():
                return PackageManagerInfo(name=name, reason=f"lockfile: {lockfile}")
        except OSError:
            continue

    return PackageManagerInfo(
        name=DEFAULT_MANAGER,
        reason="default: no packageManager field or known lockfile",
    )
