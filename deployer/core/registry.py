"""In-memory registry of deployments and analysis sessions.

Note: state is process-local and lost on restart. For multi-process setups
this should be backed by Redis or a database.
"""

import asyncio
import shutil
from datetime import timedelta

from deployer.config import settings
from deployer.core.events import Broadcaster, get_broadcaster
from deployer.models.deployment import (
    AnalysisSession,
    Deployment,
    DeploymentCreate,
    utcnow,
)


class DeploymentRegistry:
    """Owns deployment records and analysis sessions, keyed by id."""

    def __init__(self, ttl_hours: int = 24, broadcaster: Broadcaster | None = None):
        self._deployments: dict[str, Deployment] = {}
        self._sessions: dict[str, AnalysisSession] = {}
        self._ttl = timedelta(hours=ttl_hours)
        self._lock = asyncio.Lock()
        self.broadcaster = broadcaster

    async def create_deployment(
        self, data: DeploymentCreate, work_dir: str | None = None
    ) -> Deployment:
        """Register a new deployment in the IDLE state."""
        deployment = Deployment(
            project=data.to_project(),
            zip_data=data.zip_data,
            work_dir=work_dir,
        )
        async with self._lock:
            self._deployments[deployment.id] = deployment
        return deployment

    async def get_deployment(self, deployment_id: str) -> Deployment | None:
        async with self._lock:
            return self._deployments.get(deployment_id)

    async def list_deployments(self) -> list[Deployment]:
        async with self._lock:
            deployments = list(self._deployments.values())
        deployments.sort(key=lambda d: d.created_at, reverse=True)
        return deployments

    async def add_session(self, session: AnalysisSession) -> AnalysisSession:
        async with self._lock:
            self._sessions[session.id] = session
        return session

    async def get_session(self, analysis_id: str) -> AnalysisSession | None:
        async with self._lock:
            return self._sessions.get(analysis_id)

    async def remove_session(self, analysis_id: str) -> bool:
        """Drop a session once the deployment that consumed it has finished."""
        async with self._lock:
            return self._sessions.pop(analysis_id, None) is not None

    async def cleanup_expired(self) -> int:
        """Remove finished deployments and unused sessions older than the TTL.

        Deployments that have not reached a terminal state are never removed.
        Returns the number of removed entries.
        """
        now = utcnow()
        async with self._lock:
            expired_deployments = [
                did
                for did, deployment in self._deployments.items()
                if deployment.status.is_terminal
                and now - (deployment.completed_at or deployment.created_at) > self._ttl
            ]
            active_dirs = {
                d.work_dir
                for d in self._deployments.values()
                if not d.status.is_terminal
            }
            expired_sessions = [
                sid
                for sid, session in self._sessions.items()
                if now - session.created_at > self._ttl
                and session.work_dir not in active_dirs
            ]
            for did in expired_deployments:
                del self._deployments[did]
            orphaned = [self._sessions.pop(sid) for sid in expired_sessions]

        if self.broadcaster is not None:
            for did in expired_deployments:
                self.broadcaster.forget(did)

        # Unused analysis clones are not owned by any deployment
        for session in orphaned:
            await asyncio.to_thread(shutil.rmtree, session.work_dir, True)

        return len(expired_deployments) + len(orphaned)


# Singleton instance
_registry: DeploymentRegistry | None = None


def get_registry() -> DeploymentRegistry:
    """Get the deployment registry singleton."""
    global _registry
    if _registry is None:
        _registry = DeploymentRegistry(
            ttl_hours=settings.deployment_ttl_hours,
            broadcaster=get_broadcaster(),
        )
    return _registry
