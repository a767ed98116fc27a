from __future__ import annotations

import pytest

from frontend.validators import (
    parse_channel_list,
    parse_positive_number,
    parse_sentiment_bound,
    parse_webhook_url,
)


def test_channel_list_all_and_blank() -> None:
    assert parse_channel_list("all").normalized == "ALL"
    assert parse_channel_list("  ").normalized == "ALL"


def test_channel_list_normalizes_ids() -> None:
    info = parse_channel_list(" 123, 456 ,,")

    assert info.normalized == "123,456"
    assert info.count == 2
    assert info.error is None


def test_channel_list_rejects_names() -> None:
    info = parse_channel_list("123,general")

    assert info.normalized is None
    assert "general" in info.error


def test_webhook_url() -> None:
    assert parse_webhook_url(" https://hooks.test/a ") == ("https://hooks.test/a", None)
    assert parse_webhook_url("", required=False) == (None, None)
    assert parse_webhook_url("")[1] == "webhook URL is required"
    assert parse_webhook_url("hooks.test/a")[0] is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("-1", -1.0), ("0.25", 0.25), ("1", 1.0), ("1.5", None), ("abc", None)],
)
def test_sentiment_bound(raw, expected) -> None:
    value, error = parse_sentiment_bound(raw)

    assert value == expected
    assert (error is None) == (expected is not None)


def test_positive_number() -> None:
    assert parse_positive_number("2.5") == (2.5, None)
    assert parse_positive_number("500", integer=True) == (500, None)
    assert parse_positive_number("2.5", integer=True) == (None, "must be a whole number")
    assert parse_positive_number("0") == (None, "must be greater than zero")
