"""Deploy providers."""

from deployer.config import settings
from deployer.models.deployment import DeployTarget, ProjectDescriptor
from deployer.providers.base import DeployProvider, PublishResult
from deployer.providers.cloudflare_pages import CloudflarePagesProvider
from deployer.providers.local import LocalStaticProvider
from deployer.providers.r2 import R2Provider

PROVIDERS: dict[DeployTarget, type[DeployProvider]] = {
    DeployTarget.LOCAL: LocalStaticProvider,
    DeployTarget.CLOUDFLARE: CloudflarePagesProvider,
    DeployTarget.R2: R2Provider,
}


def select_target(project: ProjectDescriptor) -> DeployTarget:
    """Project override, else the configured default."""
    if project.deploy_target is not None:
        return DeployTarget(project.deploy_target)
    return DeployTarget(settings.deploy_target)


def get_provider(target: DeployTarget) -> DeployProvider:
    """Instantiate the provider for a target."""
    return PROVIDERS[DeployTarget(target)]()


__all__ = [
    "DeployProvider",
    "PublishResult",
    "LocalStaticProvider",
    "CloudflarePagesProvider",
    "R2Provider",
    "select_target",
    "get_provider",
]
