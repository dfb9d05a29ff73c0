"""Ordered, best-effort fix pipeline."""

from pathlib import Path

from deployer.core.events import Broadcaster
from deployer.fixes.base import BaseFix, FixContext
from deployer.models.deployment import DeployTarget, Deployment, LogLevel
from deployer.utils.logging import get_logger


class FixPipeline:
    """Runs fixes in a fixed order; a failing fix never aborts the deployment."""

    def __init__(self, fixes: list[BaseFix], broadcaster: Broadcaster):
        self.fixes = list(fixes)
        self.broadcaster = broadcaster
        self.logger = get_logger("fix_pipeline")

    async def run(
        self,
        deployment: Deployment,
        work_dir: str | Path,
        dist_dir: str | Path | None = None,
        deploy_target: DeployTarget = DeployTarget.LOCAL,
    ) -> list[str]:
        """Run every applicable fix. Returns the ids of fixes that applied cleanly."""

        async def log(message: str, level: LogLevel = LogLevel.INFO) -> None:
            await self.broadcaster.append_log(deployment, message, level)

        ctx = FixContext(
            deployment_id=deployment.id,
            work_dir=Path(work_dir),
            dist_dir=Path(dist_dir) if dist_dir is not None else None,
            log=log,
            deploy_target=deploy_target,
        )

        applied: list[str] = []
        for fix in self.fixes:
            try:
                if not await fix.detect(ctx):
                    continue

                await log(f'Applying fix "{fix.id}": {fix.description}')
                await fix.apply(ctx)
                await log(f'Fix "{fix.id}" applied successfully.', LogLevel.SUCCESS)
                applied.append(fix.id)
            except Exception as e:
                self.logger.warning(
                    "fix_pipeline.fix_failed",
                    deployment_id=deployment.id,
                    fix=fix.id,
                    error=str(e),
                )
                await log(f'Fix "{fix.id}" failed: {e}', LogLevel.WARNING)

        return applied
