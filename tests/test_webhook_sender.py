from __future__ import annotations

import asyncio
import json

import httpx

from adapters.webhook_sender import HttpWebhookSender


def _sender(handler) -> HttpWebhookSender:
    return HttpWebhookSender(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _post(sender: HttpWebhookSender, url: str, payload: dict):
    async def _go():
        try:
            return await sender.post(url, payload)
        finally:
            await sender.aclose()

    return asyncio.run(_go())


def test_post_sends_json_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    response = _post(_sender(handler), "https://hooks.test/a", {"text": "hello"})

    assert response.ok
    assert response.text == "ok"
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/json"
    assert json.loads(seen[0].content) == {"text": "hello"}


def test_non_2xx_is_returned_not_raised() -> None:
    response = _post(_sender(lambda request: httpx.Response(500, text="boom")), "https://hooks.test/a", {})

    assert not response.ok
    assert response.status_code == 500
    assert response.text == "boom"


def test_error_body_is_capped() -> None:
    response = _post(_sender(lambda request: httpx.Response(502, text="x" * 5000)), "https://hooks.test/a", {})

    assert len(response.text) == 1000
