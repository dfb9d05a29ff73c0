"""Deployment endpoints."""

from fastapi import APIRouter, status
from sse_starlette.sse import EventSourceResponse

from deployer.api.deps import AnalysisDep, DeploymentDep, EventsDep, OrchestratorDep
from deployer.config import settings
from deployer.models.deployment import (
    AnalyzeRequest,
    AnalyzeResponse,
    DeploymentAccepted,
    DeploymentCreate,
    DeploymentResponse,
)

router = APIRouter()


@router.post(
    "/deploy",
    response_model=DeploymentAccepted,
    status_code=status.HTTP_200_OK,
    summary="Start a deployment",
)
async def create_deployment(
    data: DeploymentCreate,
    orchestrator: OrchestratorDep,
) -> DeploymentAccepted:
    """Accept a deployment and run it in the background.

    Progress is available from the stream endpoint as soon as this returns.
    """
    deployment_id = await orchestrator.start_deployment(data)
    return DeploymentAccepted(deployment_id=deployment_id)


@router.get(
    "/deployments/{deployment_id}",
    response_model=DeploymentResponse,
    summary="Get deployment status and logs",
)
async def get_deployment(deployment: DeploymentDep) -> DeploymentResponse:
    return DeploymentResponse.from_deployment(deployment)


@router.get(
    "/deployments/{deployment_id}/stream",
    summary="Stream deployment logs and status (SSE)",
)
async def stream_deployment(
    deployment: DeploymentDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Replay the log backlog, then stream live events until a terminal status."""

    async def event_generator():
        async for event in events.stream(deployment):
            yield {"data": event.to_json()}

    return EventSourceResponse(
        event_generator(),
        ping=int(settings.stream_keepalive_seconds),
    )


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    summary="Clone a repository and locate its AI client code",
)
async def analyze_repository(
    data: AnalyzeRequest,
    analysis: AnalysisDep,
) -> AnalyzeResponse:
    session, source_code = await analysis.prepare(data.repo_url)
    return AnalyzeResponse(
        analysis_id=session.id,
        file_path=session.file_path,
        source_code=source_code,
    )
