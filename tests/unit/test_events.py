"""Unit tests for the log/status broadcaster."""

import asyncio

import pytest

from deployer.core.events import Broadcaster, Event
from deployer.core.exceptions import InvalidStatusTransition
from deployer.models.deployment import Deployment, DeploymentStatus, LogLevel


class TestBroadcaster:
    """Tests for Broadcaster."""

    @pytest.mark.asyncio
    async def test_append_log_records_and_publishes(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        backlog, queue = await broadcaster.subscribe(deployment)
        assert [e.data["type"] for e in backlog] == ["status"]

        await broadcaster.append_log(deployment, "hello", LogLevel.WARNING)

        assert deployment.logs[-1].message == "hello"
        event = queue.get_nowait()
        assert event.data == {"type": "log", "message": "hello", "level": "warning"}

    @pytest.mark.asyncio
    async def test_illegal_status_publishes_nothing(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        _, queue = await broadcaster.subscribe(deployment)

        with pytest.raises(InvalidStatusTransition):
            await broadcaster.update_status(deployment, DeploymentStatus.SUCCESS)

        assert queue.empty()
        assert deployment.status == DeploymentStatus.IDLE

    @pytest.mark.asyncio
    async def test_late_subscriber_sees_same_order(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        early_backlog, early_queue = await broadcaster.subscribe(deployment)

        await broadcaster.update_status(deployment, DeploymentStatus.BUILDING)
        await broadcaster.append_log(deployment, "one")
        await broadcaster.append_log(deployment, "two")

        late_backlog, late_queue = await broadcaster.subscribe(deployment)

        await broadcaster.append_log(deployment, "three")
        await broadcaster.update_status(deployment, DeploymentStatus.FAILED, errorMessage="x")

        def logs(events: list[Event]) -> list[str]:
            return [e.data["message"] for e in events if e.event_type == "log"]

        early = [early_queue.get_nowait() for _ in range(early_queue.qsize())]
        late = late_backlog + [late_queue.get_nowait() for _ in range(late_queue.qsize())]

        assert logs(early) == ["one", "two", "three"]
        assert logs(late) == ["one", "two", "three"]
        assert early[-1].data["status"] == "FAILED"
        assert late[-1].data == {"type": "status", "status": "FAILED", "errorMessage": "x"}

    @pytest.mark.asyncio
    async def test_forget_drops_lock_and_queues(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        await broadcaster.subscribe(deployment)
        await broadcaster.append_log(deployment, "hello")

        broadcaster.forget(deployment.id)
        broadcaster.forget(deployment.id)

        assert deployment.id not in broadcaster._locks
        assert broadcaster.subscriber_count(deployment.id) == 0

    @pytest.mark.asyncio
    async def test_stream_replays_backlog_for_finished_deployment(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        await broadcaster.update_status(deployment, DeploymentStatus.BUILDING)
        await broadcaster.append_log(deployment, "built")
        await broadcaster.update_status(deployment, DeploymentStatus.FAILED)

        events = [event async for event in broadcaster.stream(deployment)]

        assert [e.event_type for e in events] == ["log", "status"]
        assert events[-1].is_terminal
        assert broadcaster.subscriber_count(deployment.id) == 0

    @pytest.mark.asyncio
    async def test_stream_follows_live_events_until_terminal(
        self, broadcaster: Broadcaster, deployment: Deployment
    ):
        await broadcaster.update_status(deployment, DeploymentStatus.BUILDING)

        async def consume() -> list[Event]:
            return [event async for event in broadcaster.stream(deployment)]

        consumer = asyncio.create_task(consume())
        while broadcaster.subscriber_count(deployment.id) == 0:
            await asyncio.sleep(0)

        await broadcaster.append_log(deployment, "live")
        await broadcaster.update_status(deployment, DeploymentStatus.DEPLOYING)
        await broadcaster.update_status(deployment, DeploymentStatus.SUCCESS)

        events = await asyncio.wait_for(consumer, timeout=5)

        assert [e.data.get("status") or e.data.get("message") for e in events] == [
            "BUILDING",
            "live",
            "DEPLOYING",
            "SUCCESS",
        ]
        assert broadcaster.subscriber_count(deployment.id) == 0


class TestEvent:
    """Tests for Event."""

    def test_to_sse(self):
        event = Event({"type": "log", "message": "hi", "level": "info"})
        assert event.to_sse() == 'data: {"type": "log", "message": "hi", "level": "info"}\n\n'

    def test_log_is_not_terminal(self):
        assert not Event({"type": "log", "message": "SUCCESS"}).is_terminal
