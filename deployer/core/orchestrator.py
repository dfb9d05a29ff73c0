"""Deployment orchestrator.

Drives one deployment job from source to published site:

1. materialize - fetch sources (or reuse an analysis clone)
2. metadata - resolve name/slug/tags when the client did not supply a slug
3. pre-build fixes
4. install and build (skipped for static sources)
5. post-build fixes
6. publish through the selected provider

Every step reports through the broadcaster; the first fatal error ends the
job in FAILED with its message kept verbatim.
"""

import asyncio
from functools import partial
from pathlib import Path
from typing import Any, Callable

from deployer.config import settings
from deployer.core.builder import BuildExecutor
from deployer.core.events import Broadcaster, get_broadcaster
from deployer.core.exceptions import (
    DeployerError,
    DeploymentNotFoundError,
    InvalidDeploymentRequest,
)
from deployer.core.materializer import SourceMaterializer
from deployer.core.package_manager import detect_package_manager
from deployer.core.registry import DeploymentRegistry, get_registry
from deployer.fixes import FixPipeline, default_fixes
from deployer.models.deployment import (
    Deployment,
    DeploymentCreate,
    DeploymentStatus,
    DeployTarget,
    LogLevel,
    SourceType,
)
from deployer.models.metadata import DEFAULT_CATEGORY, ProjectMetadataOverrides
from deployer.providers import DeployProvider, get_provider, select_target
from deployer.services.metadata_service import MetadataService, get_metadata_service
from deployer.utils.logging import get_logger
from deployer.utils.strings import slugify

ProviderFactory = Callable[[DeployTarget], DeployProvider]


def validate_request(data: DeploymentCreate) -> None:
    """Reject requests that cannot produce a deployment.

    Raises:
        InvalidDeploymentRequest: If the name or source reference is missing.
    """
    if not data.name.strip():
        raise InvalidDeploymentRequest("project.name is required")

    has_inline_html = data.source_type == SourceType.HTML and bool(
        (data.html_content or "").strip()
    )
    has_upload = data.source_type == SourceType.ZIP and bool(data.zip_data)
    if not data.repo_url.strip() and not (has_inline_html or has_upload):
        raise InvalidDeploymentRequest("project.name and project.repoUrl are required")


class DeploymentOrchestrator:
    """Runs deployment jobs as background tasks."""

    def __init__(
        self,
        registry: DeploymentRegistry | None = None,
        broadcaster: Broadcaster | None = None,
        materializer: SourceMaterializer | None = None,
        fix_pipeline: FixPipeline | None = None,
        builder: BuildExecutor | None = None,
        metadata_service: MetadataService | None = None,
        provider_factory: ProviderFactory | None = None,
        builds_root: Path | None = None,
    ):
        self.registry = registry or get_registry()
        self.broadcaster = broadcaster or get_broadcaster()
        self.materializer = materializer or SourceMaterializer(self.broadcaster)
        self.fix_pipeline = fix_pipeline or FixPipeline(default_fixes(), self.broadcaster)
        self.builder = builder or BuildExecutor(self.broadcaster)
        self.metadata_service = metadata_service or get_metadata_service()
        self.provider_factory = provider_factory or get_provider
        self.builds_root = builds_root or settings.builds_root
        self.logger = get_logger("orchestrator")

        # Strong references so running jobs are not garbage collected
        self._tasks: set[asyncio.Task] = set()

    async def start_deployment(self, data: DeploymentCreate) -> str:
        """Register a deployment and schedule its job. Returns the deployment id."""
        validate_request(data)

        work_dir = None
        if data.analysis_id:
            session = await self.registry.get_session(data.analysis_id)
            if session is not None:
                work_dir = session.work_dir

        deployment = await self.registry.create_deployment(data, work_dir=work_dir)
        if deployment.work_dir is None:
            deployment.assign_work_dir(str(self.builds_root / deployment.id))

        task = asyncio.create_task(self.run(deployment.id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self.logger.info(
            "orchestrator.deployment.accepted",
            deployment_id=deployment.id,
            source_type=deployment.project.source_type.value,
            reuses_analysis=work_dir is not None,
        )
        return deployment.id

    async def get_deployment(self, deployment_id: str) -> Deployment | None:
        return await self.registry.get_deployment(deployment_id)

    async def join(self) -> None:
        """Wait until every scheduled job has finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run(self, deployment_id: str) -> Deployment:
        """Run one deployment job to a terminal status.

        Failures are recorded on the deployment rather than raised.
        """
        deployment = await self.registry.get_deployment(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)

        project = deployment.project
        log = partial(self.broadcaster.append_log, deployment)
        self.logger.info("orchestrator.deployment.started", deployment_id=deployment_id)

        try:
            await self.broadcaster.update_status(deployment, DeploymentStatus.BUILDING)
            await log(f'Starting deployment for "{project.name}"')

            work_dir = await self.materializer.materialize(deployment)
            await self._resolve_metadata(deployment, work_dir)

            target = select_target(project)
            await self.fix_pipeline.run(deployment, work_dir, deploy_target=target)

            output_dir = await self._build(deployment, work_dir)
            await self.fix_pipeline.run(
                deployment, work_dir, dist_dir=output_dir, deploy_target=target
            )

            await self.broadcaster.update_status(deployment, DeploymentStatus.DEPLOYING)
            provider = self.provider_factory(target)
            result = await provider.publish(project.slug, output_dir, log)

            project.url = result.public_url
            project.deploy_target = target
            if result.provider_url:
                project.provider_url = result.provider_url
            if result.project_name:
                project.cloudflare_project_name = result.project_name

            await log(
                f"Deployment complete. App is available at {result.public_url}",
                LogLevel.SUCCESS,
            )
            await self.broadcaster.update_status(
                deployment,
                DeploymentStatus.SUCCESS,
                projectMetadata=self._project_metadata(deployment),
            )
            self.logger.info(
                "orchestrator.deployment.completed",
                deployment_id=deployment_id,
                url=result.public_url,
                target=target.value,
            )

        except Exception as e:
            await self._fail(deployment, e)

        finally:
            if project.analysis_id:
                await self.registry.remove_session(project.analysis_id)

        return deployment

    async def _fail(self, deployment: Deployment, error: Exception) -> None:
        message = error.message if isinstance(error, DeployerError) else str(error)
        message = message or type(error).__name__

        self.logger.error(
            "orchestrator.deployment.failed",
            deployment_id=deployment.id,
            error=message,
            error_type=type(error).__name__,
        )

        if deployment.status.is_terminal:
            return

        deployment.project.error_message = message
        await self.broadcaster.append_log(
            deployment, f"Deployment failed: {message}", LogLevel.ERROR
        )
        await self.broadcaster.update_status(
            deployment, DeploymentStatus.FAILED, errorMessage=message
        )

    async def _resolve_metadata(self, deployment: Deployment, work_dir: Path) -> None:
        project = deployment.project

        if project.slug and project.slug.strip():
            metadata = await self.metadata_service.ensure_project_metadata(
                seed_name=project.name,
                identifier=project.repo_url or project.name,
                source_type=project.source_type,
                slug_seed=project.slug,
                overrides=ProjectMetadataOverrides(
                    name=project.name,
                    slug=project.slug,
                    description=project.description,
                    category=project.category,
                    tags=project.tags,
                ),
            )
            project.name = metadata.name
            project.slug = metadata.slug
            project.description = metadata.description
            project.category = metadata.category
            project.tags = metadata.tags
            return

        project.slug = slugify(project.name)
        await self.broadcaster.append_log(
            deployment, "Generating project metadata (name, slug, tags) from source content..."
        )

        metadata = await self.metadata_service.ensure_project_metadata(
            seed_name=project.name,
            identifier=project.repo_url or project.name,
            source_type=project.source_type,
            html_content=project.html_content,
            slug_seed=project.slug,
            work_dir=work_dir,
        )

        if not metadata.from_ai and self.metadata_service.ai_service.has_credentials():
            await self.broadcaster.append_log(
                deployment,
                "AI metadata unavailable; using seed name and slug.",
                LogLevel.WARNING,
            )

        previous_name, previous_slug = project.name, project.slug
        project.name = metadata.name
        project.slug = metadata.slug
        project.description = project.description or metadata.description
        project.category = project.category or metadata.category
        project.tags = project.tags or metadata.tags

        if metadata.name != previous_name:
            await self.broadcaster.append_log(
                deployment, f'AI renamed project to "{metadata.name}".'
            )
        if metadata.slug != previous_slug:
            await self.broadcaster.append_log(
                deployment, f'Using AI-generated slug "{metadata.slug}" for deployment.'
            )

    async def _build(self, deployment: Deployment, work_dir: Path) -> Path:
        """Install and build if needed. Returns the directory to publish."""
        project = deployment.project

        if project.source_type == SourceType.HTML or self.builder.is_static_source(work_dir):
            await self.broadcaster.append_log(
                deployment,
                "No package.json detected or HTML source provided. Skipping install/build "
                "and treating source as static assets.",
            )
            return work_dir

        manager = detect_package_manager(work_dir)
        await self.broadcaster.append_log(
            deployment, f"Detected package manager: {manager.name} ({manager.reason})"
        )
        await self.builder.install_and_build(deployment, work_dir, manager)
        return self.builder.locate_output(work_dir)

    @staticmethod
    def _project_metadata(deployment: Deployment) -> dict[str, Any]:
        project = deployment.project
        return {
            "name": project.name,
            "slug": project.slug,
            "description": project.description,
            "category": project.category or DEFAULT_CATEGORY,
            "tags": list(project.tags),
            "url": project.url,
        }


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator()
    return _orchestrator
