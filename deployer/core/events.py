"""Per-deployment log ledger and live event fan-out.

Every log line and status change is recorded on the deployment first and then
pushed to each subscriber queue while holding that deployment's lock, so a
subscriber that attaches late (backlog snapshot + queue registration happen
under the same lock) sees exactly the same order as one attached from the start.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator

from deployer.models.deployment import (
    BuildLog,
    Deployment,
    DeploymentStatus,
    LogLevel,
    log_event,
    status_event,
    utcnow,
)


@dataclass
class Event:
    """A log or status event for one deployment."""

    data: dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def event_type(self) -> str:
        return self.data.get("type", "")

    @property
    def is_terminal(self) -> bool:
        return (
            self.event_type == "status"
            and DeploymentStatus(self.data["status"]).is_terminal
        )

    def to_json(self) -> str:
        return json.dumps(self.data)

    def to_sse(self) -> str:
        """Convert to SSE format."""
        return f"data: {self.to_json()}\n\n"


class Broadcaster:
    """Records logs/status on deployments and fans them out to subscribers."""

    def __init__(self):
        self._subscribers: dict[str, set[asyncio.Queue[Event]]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, deployment_id: str) -> asyncio.Lock:
        return self._locks.setdefault(deployment_id, asyncio.Lock())

    def _fan_out(self, deployment_id: str, event: Event) -> None:
        for queue in self._subscribers.get(deployment_id, ()):
            queue.put_nowait(event)

    async def append_log(
        self,
        deployment: Deployment,
        message: str,
        level: LogLevel = LogLevel.INFO,
    ) -> BuildLog:
        """Append a log line to the ledger and publish it."""
        async with self._lock_for(deployment.id):
            entry = BuildLog(message=message, level=level)
            deployment.logs.append(entry)
            self._fan_out(deployment.id, Event(log_event(entry)))
        return entry

    async def update_status(
        self,
        deployment: Deployment,
        status: DeploymentStatus,
        **extra: Any,
    ) -> None:
        """Record a status transition and publish it.

        Raises InvalidStatusTransition (and publishes nothing) if the
        transition would regress or leave a terminal state.
        """
        async with self._lock_for(deployment.id):
            deployment.transition(status)
            self._fan_out(deployment.id, Event(status_event(status, **extra)))

    async def subscribe(
        self, deployment: Deployment
    ) -> tuple[list[Event], asyncio.Queue[Event]]:
        """Snapshot the backlog and attach a live queue in one step.

        The backlog is every log recorded so far followed by the current status.
        """
        async with self._lock_for(deployment.id):
            backlog = [Event(log_event(entry)) for entry in deployment.logs]
            backlog.append(Event(status_event(deployment.status)))
            queue: asyncio.Queue[Event] = asyncio.Queue()
            self._subscribers.setdefault(deployment.id, set()).add(queue)
        return backlog, queue

    def unsubscribe(self, deployment_id: str, queue: asyncio.Queue[Event]) -> None:
        """Detach a subscriber queue."""
        listeners = self._subscribers.get(deployment_id)
        if listeners is None:
            return
        listeners.discard(queue)
        if not listeners:
            del self._subscribers[deployment_id]

    def subscriber_count(self, deployment_id: str) -> int:
        return len(self._subscribers.get(deployment_id, ()))

    def forget(self, deployment_id: str) -> None:
        """Drop the lock and any leftover queues of a deployment that is gone."""
        self._locks.pop(deployment_id, None)
        self._subscribers.pop(deployment_id, None)

    async def stream(self, deployment: Deployment) -> AsyncIterator[Event]:
        """Yield the backlog, then live events until a terminal status."""
        backlog, queue = await self.subscribe(deployment)
        try:
            for event in backlog:
                yield event
            if backlog[-1].is_terminal:
                return

            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            self.unsubscribe(deployment.id, queue)


# Singleton instance
_broadcaster: Broadcaster | None = None


def get_broadcaster() -> Broadcaster:
    """Get the broadcaster singleton."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = Broadcaster()
    return _broadcaster
