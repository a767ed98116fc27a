from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.classification import ClassificationStore
from core.ledger import UsageLedger
from core.models import (
    Analysis,
    Author,
    Channel,
    CustomerMood,
    DeliveryRecord,
    Mentions,
    Message,
    Sentiment,
    Server,
    TeamRouting,
    TechnicalDetails,
    TokenUsage,
    default_analysis,
)
from core.registry import DestinationRegistry


@pytest.fixture()
def storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.init_db()
    return storage


def _message(message_id: str = "m1", channel_id: str = "c1") -> Message:
    return Message(
        id=message_id,
        content=f"message {message_id}",
        author=Author(id="u1", tag="alice", display_name="Alice"),
        channel=Channel(id=channel_id, name="help"),
        server=Server(id="g1", name="Guild"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        mentions=Mentions(users=("bob",), roles=("mods",)),
    )


def _analysis(priority: str = "high", needs_response: bool = True, summary: str = "first") -> Analysis:
    return Analysis(
        support_status="bug_report",
        tone="frustrated",
        priority=priority,
        sentiment=Sentiment(score=-0.4, confidence=0.8),
        topics=("login", "crash"),
        needs_response=needs_response,
        summary=summary,
        suggested_actions=("Reproduce",),
        customer_mood=CustomerMood(description="Annoyed", emoji="😠"),
        technical_details=TechnicalDetails(has_error=True),
        team_routing=TeamRouting(recommended_destination="Engineering", confidence=0.7, reasoning="bug"),
    )


def _row_count(storage: SQLiteStorage, table: str) -> int:
    with storage._connect() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def test_upsert_keeps_one_row_and_latest_analysis(storage) -> None:
    store = ClassificationStore(storage)
    message = _message()

    assert store.upsert_analysis(message, _analysis(summary="first"), TokenUsage(100, 50, 150), "m", 10)
    first = store.get_recent()[0]
    assert store.upsert_analysis(message, _analysis(priority="low", summary="second"), TokenUsage(10, 5, 15), "m", 20)

    rows = store.get_recent()
    assert len(rows) == 1
    row = rows[0]
    assert row["summary"] == "second"
    assert row["priority"] == "low"
    assert row["total_tokens"] == 15
    assert row["id"] == first["id"]
    assert row["created_at"] == first["created_at"]
    assert row["topics"] == ["login", "crash"]
    assert row["mentioned_users"] == ["bob"]
    assert row["needs_response"] is True
    assert row["routed_destination"] == "Engineering"


def test_needing_response_sorted_by_priority(storage) -> None:
    store = ClassificationStore(storage)
    usage = TokenUsage(1, 1, 2)
    store.upsert_analysis(_message("low"), _analysis(priority="low"), usage, "m", 1)
    store.upsert_analysis(_message("crit"), _analysis(priority="critical"), usage, "m", 1)
    store.upsert_analysis(_message("none"), _analysis(priority="critical", needs_response=False), usage, "m", 1)
    store.upsert_analysis(_message("med"), _analysis(priority="medium"), usage, "m", 1)

    ids = [row["message_id"] for row in store.get_needing_response()]

    assert ids == ["crit", "med", "low"]


def test_stats_and_search(storage) -> None:
    store = ClassificationStore(storage)
    usage = TokenUsage(1000, 500, 1500)
    store.upsert_analysis(_message("a", "c1"), _analysis(priority="critical"), usage, "m", 1)
    store.upsert_analysis(_message("b", "c2"), _analysis(priority="high", needs_response=False), usage, "m", 1)

    stats = store.get_stats()
    assert stats["total_messages"] == 2
    assert stats["critical_count"] == 1
    assert stats["high_count"] == 1
    assert stats["needs_response_count"] == 1
    assert stats["total_cost"] == pytest.approx(0.0005)

    assert [row["message_id"] for row in store.search(priority="critical")] == ["a"]
    assert [row["message_id"] for row in store.search(text="message b")] == ["b"]
    assert [row["message_id"] for row in store.get_by_channel("c2")] == ["b"]


def test_usage_rows_are_append_only(storage) -> None:
    ledger = UsageLedger(storage)
    message = _message()

    ledger.record_usage(message, default_analysis(message), TokenUsage.zero(), "gpt-4o-mini", 5, "boom")
    ledger.record_usage(message, _analysis(), TokenUsage(1000, 500, 1500), "gpt-4o-mini", 7)

    summary = ledger.summary(30)
    assert summary["total_messages"] == 2
    assert summary["error_count"] == 1
    assert summary["total_cost"] == pytest.approx(0.00025)
    assert storage.list_usage(message_id="m1")[0]["error_occurred"] == 0
    assert ledger.by_model(30)[0]["model"] == "gpt-4o-mini"
    assert ledger.top_channels()[0]["message_count"] == 2


def _delivery(success: bool, destination_id: int = 1, status: int | None = 200) -> DeliveryRecord:
    return DeliveryRecord(
        message_id="m1",
        channel_id="c1",
        destination_id=destination_id,
        webhook_url="https://hooks/1",
        success=success,
        status_code=status,
        error_message=None if success else "failed",
    )


def test_delivery_log_keeps_at_most_one_success(storage) -> None:
    assert storage.record_delivery(_delivery(True)) is True
    assert storage.record_delivery(_delivery(True)) is False
    assert storage.record_delivery(_delivery(False, status=500)) is False

    rows = storage.list_deliveries(message_id="m1")
    assert len(rows) == 1
    assert rows[0]["success"] is True


def test_failed_delivery_can_be_replaced_by_success(storage) -> None:
    assert storage.record_delivery(_delivery(False, status=500)) is True
    assert storage.record_delivery(_delivery(True)) is True

    rows = storage.list_deliveries(message_id="m1")
    assert len(rows) == 1
    assert rows[0]["success"] is True
    assert rows[0]["response_status"] == 200


def test_delivery_unique_per_destination(storage) -> None:
    storage.record_delivery(_delivery(True, destination_id=1))
    storage.record_delivery(_delivery(True, destination_id=0))

    assert _row_count(storage, "delivery_log") == 2
    names = {row["destination_name"] for row in storage.list_deliveries()}
    assert "default" in names


def test_destination_crud_through_registry(storage) -> None:
    registry = DestinationRegistry(storage)

    created = registry.create("Billing", "Payments and refunds", "https://hooks/billing", send_priorities={"medium": True})
    assert created.id >= 1
    assert created.send_priorities == {"low": False, "medium": True, "high": True, "critical": True}
    assert created.send_statuses["bug_report"] is True
    assert created.send_statuses["feedback"] is False

    updated = registry.update(created.id, enabled=False, send_statuses={"feedback": True})
    assert updated is not None
    assert updated.enabled is False
    assert updated.send_statuses["feedback"] is True
    assert updated.send_statuses["bug_report"] is True

    assert registry.list_enabled() == []
    assert [dest.name for dest in registry.list_all()] == ["Billing"]
    assert registry.delete(created.id) is True
    assert registry.get(created.id) is None
    assert registry.update(created.id, name="Gone") is None


def test_destination_names_are_unique(storage) -> None:
    registry = DestinationRegistry(storage)
    registry.create("Billing", "Payments", "https://hooks/1")

    with pytest.raises(sqlite3.IntegrityError):
        registry.create("Billing", "Other", "https://hooks/2")


def test_default_destination_is_seeded_and_updatable(storage) -> None:
    registry = DestinationRegistry(storage)

    seeded = registry.get_legacy_default()
    assert seeded is not None
    assert seeded.enabled is False
    assert seeded.webhook_url is None
    assert seeded.send_priorities["critical"] is True
    assert seeded.min_sentiment_score == -1.0

    updated = registry.update_legacy_default(
        webhook_url="https://hooks/default",
        enabled=True,
        max_sentiment_score=0.5,
        send_priorities={"medium": True},
    )
    assert updated.enabled is True
    assert updated.webhook_url == "https://hooks/default"
    assert updated.max_sentiment_score == 0.5
    assert updated.send_priorities["medium"] is True


def test_init_db_is_idempotent(storage) -> None:
    storage.init_db()

    assert _row_count(storage, "default_destination") == 1


def test_delivery_history_through_registry(storage) -> None:
    registry = DestinationRegistry(storage)
    billing = registry.create("Billing", "Payments", "https://hooks/billing")
    storage.record_delivery(_delivery(True, destination_id=billing.id))
    storage.record_delivery(_delivery(False, destination_id=0, status=500))

    history = registry.delivery_history(destination_id=billing.id)
    assert [row["destination_name"] for row in history] == ["Billing"]
    assert history[0]["success"] is True

    by_message = registry.delivery_history(message_id="m1")
    assert {row["destination_name"] for row in by_message} == {"Billing", "default"}
    assert registry.delivery_history(message_id="other") == []
