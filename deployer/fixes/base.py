"""Base class for source/output fixes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from deployer.models.deployment import DeployTarget

# log(message, level=LogLevel.INFO)
LogFn = Callable[..., Awaitable[object]]


@dataclass(frozen=True)
class FixContext:
    """What a fix is allowed to see.

    ``dist_dir`` is only set during the post-build pass.
    """

    deployment_id: str
    work_dir: Path
    log: LogFn
    dist_dir: Path | None = None
    deploy_target: DeployTarget = DeployTarget.LOCAL

    @property
    def is_post_build(self) -> bool:
        return self.dist_dir is not None


class BaseFix(ABC):
    """A best-effort transformation applied before or after the build.

    Subclasses implement:
    - id: Stable identifier used in logs
    - description: What the fix does
    - detect(): Whether the fix applies to this context
    - apply(): Perform the change
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Fix identifier."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this fix does."""
        pass

    @abstractmethod
    async def detect(self, ctx: FixContext) -> bool:
        """Return True if the fix should run. Must not modify files."""
        pass

    @abstractmethod
    async def apply(self, ctx: FixContext) -> None:
        """Apply the fix."""
        pass
