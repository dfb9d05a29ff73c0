"""Deployment-related data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from deployer.core.exceptions import InvalidStatusTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentStatus(str, Enum):
    """Deployment job status. Only ever moves forward."""

    IDLE = "IDLE"
    BUILDING = "BUILDING"
    DEPLOYING = "DEPLOYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DeploymentStatus.SUCCESS, DeploymentStatus.FAILED})

ALLOWED_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.IDLE: frozenset({DeploymentStatus.BUILDING}),
    DeploymentStatus.BUILDING: frozenset(
        {DeploymentStatus.DEPLOYING, DeploymentStatus.FAILED}
    ),
    DeploymentStatus.DEPLOYING: frozenset(
        {DeploymentStatus.SUCCESS, DeploymentStatus.FAILED}
    ),
}


class LogLevel(str, Enum):
    """Severity of a user-visible build log line."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class SourceType(str, Enum):
    """Where the project source comes from."""

    GITHUB = "github"
    ZIP = "zip"
    HTML = "html"


class DeployTarget(str, Enum):
    """Backend that publishes the build output."""

    LOCAL = "local"
    CLOUDFLARE = "cloudflare"
    R2 = "r2"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BuildLog(BaseModel):
    """A single immutable log line in a deployment's ledger."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    level: LogLevel = LogLevel.INFO


class ProjectDescriptor(CamelModel):
    """Mutable snapshot of the project being deployed.

    The orchestrator is the only writer once a job has started.
    """

    name: str
    repo_url: str = ""
    source_type: SourceType = SourceType.GITHUB
    slug: str | None = None
    analysis_id: str | None = None

    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    deploy_target: DeployTarget | None = None
    html_content: str | None = None

    # Results
    url: str | None = None
    provider_url: str | None = None
    cloudflare_project_name: str | None = None
    error_message: str | None = None


class Deployment(BaseModel):
    """One deploy request and everything recorded about it."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    status: DeploymentStatus = DeploymentStatus.IDLE
    logs: list[BuildLog] = Field(default_factory=list)
    project: ProjectDescriptor
    work_dir: str | None = None

    # Base64 archive uploaded by the client for zip sources
    zip_data: str | None = Field(default=None, repr=False)

    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    def transition(self, status: DeploymentStatus) -> None:
        """Move to ``status``, rejecting regressions and repeats."""
        allowed = ALLOWED_TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise InvalidStatusTransition(self.status.value, status.value)

        self.status = status
        if status.is_terminal:
            self.completed_at = utcnow()

    def assign_work_dir(self, path: str) -> str:
        """Set the working directory; it can only be assigned once."""
        if self.work_dir is not None and self.work_dir != path:
            raise ValueError(
                f"Deployment {self.id} already owns work dir {self.work_dir}"
            )
        self.work_dir = path
        return path


class AnalysisSession(BaseModel):
    """A repository cloned ahead of a deployment for inspection."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    work_dir: str
    repo_url: str
    file_path: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class DeploymentCreate(CamelModel):
    """Request model for triggering a deployment."""

    name: str = Field(..., min_length=1, max_length=200)
    repo_url: str = ""
    source_type: SourceType = SourceType.GITHUB
    slug: str | None = None
    analysis_id: str | None = None

    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    deploy_target: DeployTarget | None = None
    html_content: str | None = None
    zip_data: str | None = Field(default=None, repr=False)

    def to_project(self) -> ProjectDescriptor:
        return ProjectDescriptor(
            **self.model_dump(exclude={"zip_data"}),
        )


class DeploymentAccepted(CamelModel):
    """Response returned as soon as a deployment is accepted."""

    deployment_id: str


class DeploymentResponse(CamelModel):
    """API snapshot of a deployment."""

    deployment_id: str
    status: DeploymentStatus
    project: ProjectDescriptor
    logs: list[BuildLog] = Field(default_factory=list)
    created_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_deployment(cls, deployment: Deployment) -> "DeploymentResponse":
        """Create response from deployment model."""
        return cls(
            deployment_id=deployment.id,
            status=deployment.status,
            project=deployment.project.model_copy(deep=True),
            logs=list(deployment.logs),
            created_at=deployment.created_at,
            completed_at=deployment.completed_at,
        )


class AnalyzeRequest(CamelModel):
    """Request to pre-inspect a repository before deploying it."""

    repo_url: str = Field(..., min_length=1)
    name: str | None = None


class AnalyzeResponse(CamelModel):
    """Result of a pre-deploy analysis."""

    analysis_id: str
    file_path: str
    source_code: str


def status_event(status: DeploymentStatus, **extra: Any) -> dict[str, Any]:
    """Wire payload for a status change."""
    return {"type": "status", "status": status.value, **extra}


def log_event(log: BuildLog) -> dict[str, Any]:
    """Wire payload for a log line."""
    return {"type": "log", "message": log.message, "level": log.level.value}
