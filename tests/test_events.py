"""Tests for the in-process event bus and the audit subscriber."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.events import emitter
from src.events.audit import audit_on_event
from src.schemas.events import EventType, SystemEvent


@pytest.fixture(autouse=True)
def _no_subscriptions(monkeypatch):
    monkeypatch.setattr(emitter, "_subscriptions", [])


def _event(event_type: EventType = EventType.VERSION_CREATED, **data) -> SystemEvent:
    return SystemEvent(event_type=event_type, analysis_id="a1", data=data, source_module="tests")


class TestDelivery:
    @pytest.mark.asyncio()
    async def test_typed_subscription_filters(self):
        versions = AsyncMock()
        everything = AsyncMock()
        emitter.subscribe(versions, {EventType.VERSION_CREATED})
        emitter.subscribe(everything)

        await emitter.deliver(_event(EventType.FIELD_EDITED))
        versions.assert_not_awaited()
        everything.assert_awaited_once()

        await emitter.deliver(_event(EventType.VERSION_CREATED))
        versions.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_failing_subscriber_is_isolated(self):
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        emitter.subscribe(broken)
        emitter.subscribe(healthy)

        failed = await emitter.deliver(_event())
        assert failed == 1
        healthy.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_unsubscribe(self):
        handler = AsyncMock()
        emitter.subscribe(handler)
        emitter.subscribe(handler, [EventType.VERSION_CREATED])
        emitter.unsubscribe(handler)

        assert await emitter.deliver(_event()) == 0
        handler.assert_not_awaited()


class TestQueue:
    @pytest.mark.asyncio()
    async def test_emit_then_stop_flushes_in_order(self):
        received: list[int] = []

        async def record(event: SystemEvent) -> None:
            received.append(event.data["n"])

        emitter.subscribe(record)
        await emitter.start_event_system()
        for n in range(3):
            await emitter.emit(_event(n=n))
        await emitter.stop_event_system()

        assert received == [0, 1, 2]
        assert emitter._queue is None

    @pytest.mark.asyncio()
    async def test_emit_without_start(self):
        handler = AsyncMock()
        emitter.subscribe(handler)
        await emitter.emit(_event())
        await emitter.stop_event_system()
        handler.assert_awaited_once()


class TestAudit:
    @pytest.mark.asyncio()
    async def test_audit_line(self):
        with patch("src.events.audit.audit_log") as audit_log:
            await audit_on_event(_event(version_number=2))
        args, kwargs = audit_log.info.call_args
        assert args == ("version.created",)
        assert kwargs["analysis_id"] == "a1"
        assert kwargs["data_version_number"] == 2
        assert kwargs["session_id"] is None
