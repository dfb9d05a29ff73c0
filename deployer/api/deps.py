"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from deployer.core.analysis import AnalysisService, get_analysis_service
from deployer.core.events import Broadcaster, get_broadcaster
from deployer.core.exceptions import DeploymentNotFoundError
from deployer.core.orchestrator import DeploymentOrchestrator, get_orchestrator
from deployer.models.deployment import Deployment


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def get_events() -> Broadcaster:
    """Get the log/status broadcaster."""
    return get_broadcaster()


async def get_analysis() -> AnalysisService:
    """Get the analysis service."""
    return get_analysis_service()


async def get_deployment_by_id(
    deployment_id: str,
    orchestrator: Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)],
) -> Deployment:
    """Get a deployment by ID or raise 404."""
    deployment = await orchestrator.get_deployment(deployment_id)
    if deployment is None:
        raise DeploymentNotFoundError(deployment_id)
    return deployment


# Type aliases for cleaner signatures
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
EventsDep = Annotated[Broadcaster, Depends(get_events)]
AnalysisDep = Annotated[AnalysisService, Depends(get_analysis)]
DeploymentDep = Annotated[Deployment, Depends(get_deployment_by_id)]
