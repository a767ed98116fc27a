from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from core.dispatcher import DeliveryDispatcher
from core.models import (
    Author,
    Channel,
    DeliveryPlan,
    DeliveryRecord,
    Message,
    PlanEntry,
    Server,
    default_analysis,
)
from core.ports import WebhookResponse


def _message() -> Message:
    return Message(
        id="m1",
        content="help",
        author=Author(id="u1", tag="alice", display_name="Alice"),
        channel=Channel(id="c1", name="help"),
        server=Server(id="g1", name="Guild"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class FakeSender:
    def __init__(self, responses: dict[str, object] | None = None, delay: float = 0.0) -> None:
        self.responses = responses or {}
        self.delay = delay
        self.posted: list[tuple[str, dict]] = []

    async def post(self, url: str, payload: dict) -> WebhookResponse:
        self.posted.append((url, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(url, WebhookResponse(200, "ok"))
        if isinstance(response, Exception):
            raise response
        return response


class FakeDeliveryLog:
    """Mirrors the storage rule: a success is final, a failure can be replaced."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rows: dict[tuple[str, int], DeliveryRecord] = {}

    def record_delivery(self, record: DeliveryRecord) -> bool:
        if self.fail:
            raise RuntimeError("db locked")
        key = (record.message_id, record.destination_id)
        existing = self.rows.get(key)
        if existing is not None and existing.success:
            return False
        self.rows[key] = record
        return True


def _formatter(message, analysis, entry) -> dict:
    return {"text": f"{entry.name}:{message.id}"}


def _plan(*entries: PlanEntry) -> DeliveryPlan:
    return DeliveryPlan(entries=tuple(entries))


def test_every_entry_is_attempted_and_logged() -> None:
    sender = FakeSender()
    log = FakeDeliveryLog()
    dispatcher = DeliveryDispatcher(sender, log, _formatter)
    message = _message()
    plan = _plan(
        PlanEntry(1, "Billing", "https://hooks/1", confidence=0.8, recommended=True),
        PlanEntry(2, "Engineering", "https://hooks/2"),
    )

    records = asyncio.run(dispatcher.deliver(message, default_analysis(message), plan))

    assert [record.destination_id for record in records] == [1, 2]
    assert all(record.success for record in records)
    assert records[0].routing_confidence == 0.8
    assert sender.posted[0] == ("https://hooks/1", {"text": "Billing:m1"})
    assert set(log.rows) == {("m1", 1), ("m1", 2)}


def test_non_2xx_is_recorded_as_failure_with_body() -> None:
    sender = FakeSender({"https://hooks/1": WebhookResponse(404, "no_service")})
    log = FakeDeliveryLog()
    dispatcher = DeliveryDispatcher(sender, log, _formatter)
    message = _message()

    (record,) = asyncio.run(dispatcher.deliver(message, default_analysis(message), _plan(PlanEntry(1, "A", "https://hooks/1"))))

    assert record.success is False
    assert record.status_code == 404
    assert record.error_message == "no_service"
    assert log.rows[("m1", 1)] == record


def test_transport_error_does_not_stop_other_entries() -> None:
    sender = FakeSender({"https://hooks/1": ConnectionError("refused")})
    dispatcher = DeliveryDispatcher(sender, FakeDeliveryLog(), _formatter)
    message = _message()
    plan = _plan(PlanEntry(1, "A", "https://hooks/1"), PlanEntry(2, "B", "https://hooks/2"))

    records = asyncio.run(dispatcher.deliver(message, default_analysis(message), plan))

    assert records[0].success is False
    assert records[0].status_code is None
    assert records[0].error_message == "refused"
    assert records[1].success is True


def test_timeout_is_recorded_as_failure() -> None:
    dispatcher = DeliveryDispatcher(FakeSender(delay=1.0), FakeDeliveryLog(), _formatter, timeout_seconds=0.01)
    message = _message()

    (record,) = asyncio.run(dispatcher.deliver(message, default_analysis(message), _plan(PlanEntry(1, "A", "https://hooks/1"))))

    assert record.success is False
    assert "Timed out" in (record.error_message or "")


def test_repeated_delivery_keeps_single_success() -> None:
    log = FakeDeliveryLog()
    dispatcher = DeliveryDispatcher(FakeSender(), log, _formatter)
    message = _message()
    plan = _plan(PlanEntry(1, "A", "https://hooks/1"))

    asyncio.run(dispatcher.deliver(message, default_analysis(message), plan))
    asyncio.run(dispatcher.deliver(message, default_analysis(message), plan))

    assert len(log.rows) == 1
    assert log.rows[("m1", 1)].success


def test_delivery_log_failure_is_swallowed() -> None:
    dispatcher = DeliveryDispatcher(FakeSender(), FakeDeliveryLog(fail=True), _formatter)
    message = _message()

    records = asyncio.run(dispatcher.deliver(message, default_analysis(message), _plan(PlanEntry(1, "A", "https://hooks/1"))))

    assert records[0].success is True


def test_empty_plan_sends_nothing() -> None:
    sender = FakeSender()
    dispatcher = DeliveryDispatcher(sender, FakeDeliveryLog(), _formatter)
    message = _message()

    assert asyncio.run(dispatcher.deliver(message, default_analysis(message), DeliveryPlan())) == []
    assert sender.posted == []
