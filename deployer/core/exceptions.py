"""Custom exceptions for the deployer."""

from typing import Any


class DeployerError(Exception):
    """Base exception for the deployer."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DeploymentNotFoundError(DeployerError):
    """Deployment not found."""

    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment not found: {deployment_id}",
            {"deployment_id": deployment_id},
        )


class InvalidStatusTransition(DeployerError):
    """A status change that would move a deployment backwards or out of a terminal state."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            {"current": current, "requested": requested},
        )


class MaterializationError(DeployerError):
    """The source could not be resolved into a working directory."""

    pass


class BuildCommandError(DeployerError):
    """An install/build subprocess exited unsuccessfully."""

    def __init__(self, command: str, exit_code: int | None, message: str | None = None):
        super().__init__(
            message or f'Command "{command}" exited with code {exit_code}',
            {"command": command, "exit_code": exit_code},
        )
        self.command = command
        self.exit_code = exit_code


class BuildOutputNotFoundError(DeployerError):
    """No build output directory was produced."""

    def __init__(self, candidates: list[str]):
        tried = ", ".join(f"{name}/" for name in candidates)
        super().__init__(
            f"Could not find build output directory (tried {tried})",
            {"candidates": candidates},
        )


class ProviderError(DeployerError):
    """A deploy provider failed to publish."""

    def __init__(self, provider: str, message: str):
        super().__init__(message, {"provider": provider})
        self.provider = provider


class AnalysisError(DeployerError):
    """Pre-deploy repository analysis failed."""

    pass


class InvalidDeploymentRequest(DeployerError):
    """A deploy request is missing required fields."""

    pass
