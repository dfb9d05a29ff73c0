"""Data models for the deployer."""

from deployer.models.deployment import (
    AnalysisSession,
    AnalyzeRequest,
    AnalyzeResponse,
    BuildLog,
    Deployment,
    DeploymentAccepted,
    DeploymentCreate,
    DeploymentResponse,
    DeploymentStatus,
    DeployTarget,
    LogLevel,
    ProjectDescriptor,
    SourceType,
)
from deployer.models.metadata import (
    DEFAULT_CATEGORY,
    MARKETPLACE_CATEGORIES,
    ProjectMetadataOverrides,
    ProjectMetadataSuggestion,
    ResolvedProjectMetadata,
)

__all__ = [
    # Deployment models
    "AnalysisSession",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "BuildLog",
    "Deployment",
    "DeploymentAccepted",
    "DeploymentCreate",
    "DeploymentResponse",
    "DeploymentStatus",
    "DeployTarget",
    "LogLevel",
    "ProjectDescriptor",
    "SourceType",
    # Metadata models
    "DEFAULT_CATEGORY",
    "MARKETPLACE_CATEGORIES",
    "ProjectMetadataOverrides",
    "ProjectMetadataSuggestion",
    "ResolvedProjectMetadata",
]
