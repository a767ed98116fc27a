"""Incoming-webhook HTTP adapter.

Posts JSON payloads to Slack-compatible incoming webhooks. One attempt per
call; transport errors propagate so the dispatcher can record them.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from core.ports import WebhookResponse

# Non-2xx bodies are kept in the delivery log; cap them so an HTML error page
# does not bloat the table.
_MAX_ERROR_BODY = 1000


class HttpWebhookSender:
    """WebhookSenderPort backed by httpx.AsyncClient."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self._timeout = timeout
        self._client = client

    async def post(self, url: str, payload: dict[str, Any]) -> WebhookResponse:
        """Send the payload and return the status code plus response text."""

        if self._client is not None:
            response = await self._client.post(url, json=payload, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
        return WebhookResponse(status_code=response.status_code, text=response.text[:_MAX_ERROR_BODY])

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
