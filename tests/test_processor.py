from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from functools import partial

import httpx
import pytest

from adapters.notification_formatting import format_notification
from adapters.sqlite_storage import SQLiteStorage
from adapters.webhook_sender import HttpWebhookSender
from core.analysis import AnalysisEngine
from core.classification import ClassificationStore
from core.config import AnalysisConfig, DeliveryConfig, MonitorConfig
from core.dispatcher import DeliveryDispatcher
from core.ledger import UsageLedger
from core.models import (
    LEGACY_DESTINATION_ID,
    Analysis,
    Author,
    Channel,
    CustomerMood,
    Message,
    Sentiment,
    Server,
    TeamRouting,
    TechnicalDetails,
    TokenUsage,
)
from core.ports import InferenceResult
from core.processor import MessageProcessor
from core.registry import DestinationRegistry


def _message(*, bot: bool = False, channel_id: str = "c1") -> Message:
    return Message(
        id="m1",
        content="I was charged twice this month",
        author=Author(id="u1", tag="alice", display_name="Alice", bot=bot),
        channel=Channel(id=channel_id, name="billing"),
        server=Server(id="g1", name="Guild"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def _analysis(routing: TeamRouting | None = None) -> Analysis:
    return Analysis(
        support_status="help_request",
        tone="frustrated",
        priority="high",
        sentiment=Sentiment(score=-0.3, confidence=0.8),
        topics=("billing",),
        needs_response=True,
        summary="Double charge",
        suggested_actions=("Refund",),
        customer_mood=CustomerMood(description="Annoyed", emoji="😠"),
        technical_details=TechnicalDetails(),
        team_routing=routing,
    )


class FakeAnalyzer:
    model = "fake-model"

    def __init__(
        self,
        result: InferenceResult | None = None,
        error: Exception | None = None,
        on_call=None,
    ) -> None:
        self.result = result
        self.error = error
        self.calls = 0
        self.on_call = on_call

    async def analyze(self, prompt: str, include_routing: bool) -> InferenceResult:
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return self.result


class Harness:
    def __init__(
        self,
        tmp_path,
        analyzer: FakeAnalyzer,
        monitor: MonitorConfig | None = None,
        statuses=None,
        classification_storage=None,
    ) -> None:
        self.requests: list[httpx.Request] = []
        self.statuses = statuses or {}
        self.storage = SQLiteStorage(str(tmp_path / "pipeline.db"))
        self.storage.init_db()
        self.registry = DestinationRegistry(self.storage)
        self.classifications = ClassificationStore(classification_storage or self.storage)
        self.ledger = UsageLedger(self.storage)
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        dispatcher = DeliveryDispatcher(
            HttpWebhookSender(client=self.client),
            self.storage,
            partial(format_notification, config=DeliveryConfig()),
        )
        self.processor = MessageProcessor(
            AnalysisEngine(analyzer, AnalysisConfig()),
            self.ledger,
            self.classifications,
            self.registry,
            dispatcher,
            monitor or MonitorConfig(),
        )

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.get(str(request.url), 200)
        return httpx.Response(status, text="ok" if status == 200 else "invalid_token")

    def run(self, message: Message):
        async def _go():
            try:
                return await self.processor.handle(message)
            finally:
                await self.client.aclose()

        return asyncio.run(_go())


def test_routed_message_reaches_recommended_destination_first(tmp_path) -> None:
    routing = TeamRouting(recommended_destination="Billing", confidence=0.92, reasoning="charges")
    analyzer = FakeAnalyzer(InferenceResult(_analysis(routing), TokenUsage(1000, 500, 1500)))
    harness = Harness(tmp_path, analyzer)
    harness.registry.create("Billing", "Payments and refunds", "https://hooks.test/billing")
    harness.registry.create("Engineering", "Bugs and crashes", "https://hooks.test/eng")
    harness.registry.update_legacy_default(webhook_url="https://hooks.test/default", enabled=True)

    result = harness.run(_message())

    assert result is not None
    assert [entry.name for entry in result.plan] == ["Billing", "Engineering"]
    assert str(harness.requests[0].url) == "https://hooks.test/billing"
    assert all(record.success for record in result.deliveries)
    first_payload = json.loads(harness.requests[0].content)
    assert first_payload["text"] == "New Discord message routed to Billing"

    row = harness.classifications.get_recent()[0]
    assert row["message_id"] == "m1"
    assert row["routed_destination"] == "Billing"
    assert row["total_tokens"] == 1500

    usage = harness.storage.list_usage(message_id="m1")
    assert len(usage) == 1
    assert usage[0]["total_cost"] == pytest.approx(0.00025)
    assert usage[0]["error_occurred"] == 0

    deliveries = harness.storage.list_deliveries(message_id="m1")
    assert {row["destination_name"] for row in deliveries} == {"Billing", "Engineering"}


def test_legacy_default_used_when_no_destination_matches(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(10, 5, 15)))
    harness = Harness(tmp_path, analyzer)
    harness.registry.create(
        "Feedback", "Product feedback", "https://hooks.test/feedback", send_statuses={"help_request": False}
    )
    harness.registry.update_legacy_default(webhook_url="https://hooks.test/default", enabled=True)

    result = harness.run(_message())

    assert [entry.destination_id for entry in result.plan] == [LEGACY_DESTINATION_ID]
    assert [str(request.url) for request in harness.requests] == ["https://hooks.test/default"]
    assert harness.storage.list_deliveries()[0]["destination_name"] == "default"


def test_analyzer_failure_still_records_and_notifies(tmp_path) -> None:
    harness = Harness(tmp_path, FakeAnalyzer(error=RuntimeError("provider down")))
    harness.registry.update_legacy_default(
        webhook_url="https://hooks.test/default",
        enabled=True,
        send_priorities={"medium": True},
        send_statuses={"other": True},
    )

    result = harness.run(_message())

    assert result.outcome.failed
    usage = harness.storage.list_usage(message_id="m1")[0]
    assert usage["error_occurred"] == 1
    assert usage["error_message"] == "provider down"
    assert usage["total_tokens"] == 0
    row = harness.classifications.get_recent()[0]
    assert row["summary"] == "Unable to analyze message"
    assert row["needs_response"] is True
    assert len(harness.requests) == 1


def test_failed_webhook_is_logged(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1, 1, 2)))
    harness = Harness(tmp_path, analyzer, statuses={"https://hooks.test/billing": 403})
    harness.registry.create("Billing", "Payments", "https://hooks.test/billing")

    result = harness.run(_message())

    assert result.deliveries[0].success is False
    row = harness.storage.list_deliveries(message_id="m1")[0]
    assert row["success"] is False
    assert row["response_status"] == 403
    assert row["error_message"] == "invalid_token"


def test_bot_messages_are_ignored(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1, 1, 2)))
    harness = Harness(tmp_path, analyzer)

    assert harness.run(_message(bot=True)) is None
    assert analyzer.calls == 0
    assert harness.storage.list_usage() == []


def test_unmonitored_channel_is_ignored(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1, 1, 2)))
    harness = Harness(tmp_path, analyzer, monitor=MonitorConfig.parse("c9"))

    assert harness.run(_message(channel_id="c1")) is None
    assert analyzer.calls == 0


def test_reprocessing_keeps_one_row_and_one_success(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1, 1, 2)))
    harness = Harness(tmp_path, analyzer)
    harness.registry.create("Billing", "Payments", "https://hooks.test/billing")

    async def _twice():
        try:
            await harness.processor.handle(_message())
            await harness.processor.handle(_message())
        finally:
            await harness.client.aclose()

    asyncio.run(_twice())

    assert len(harness.classifications.get_recent()) == 1
    assert len(harness.storage.list_usage(message_id="m1")) == 2
    deliveries = harness.storage.list_deliveries(message_id="m1")
    assert len(deliveries) == 1
    assert deliveries[0]["success"] is True


class FailingClassificationStorage:
    def upsert_message_log(self, *args, **kwargs) -> None:
        raise RuntimeError("database is locked")


def test_classification_write_failure_still_routes_and_records_usage(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1000, 500, 1500)))
    harness = Harness(tmp_path, analyzer, classification_storage=FailingClassificationStorage())
    harness.registry.create("Billing", "Payments", "https://hooks.test/billing")

    result = harness.run(_message())

    assert [str(request.url) for request in harness.requests] == ["https://hooks.test/billing"]
    assert result.deliveries[0].success is True
    assert harness.storage.list_deliveries(message_id="m1")[0]["success"] is True
    usage = harness.storage.list_usage(message_id="m1")
    assert len(usage) == 1
    assert usage[0]["total_tokens"] == 1500
    assert harness.storage.recent_message_logs() == []


def test_routing_uses_configuration_read_before_analysis(tmp_path) -> None:
    analyzer = FakeAnalyzer(InferenceResult(_analysis(), TokenUsage(1, 1, 2)))
    harness = Harness(tmp_path, analyzer)
    harness.registry.update_legacy_default(webhook_url="https://hooks.test/default", enabled=True)
    analyzer.on_call = lambda: harness.registry.update_legacy_default(enabled=False)

    result = harness.run(_message())

    assert harness.registry.get_legacy_default().enabled is False
    assert [entry.destination_id for entry in result.plan] == [LEGACY_DESTINATION_ID]
    assert [str(request.url) for request in harness.requests] == ["https://hooks.test/default"]
