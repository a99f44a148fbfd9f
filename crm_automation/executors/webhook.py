"""Webhook action - calls an external HTTP endpoint."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

import httpx

from ..engine.configs import WebhookActionConfig
from .base import StepContext, StepExecutor

if TYPE_CHECKING:
    from ..engine.types import Node


class WebhookExecutor(StepExecutor[WebhookActionConfig]):
    """
    Sends an HTTP request with templated url, headers and body.

    Any non-2xx response fails the step. The response body is exposed to later
    nodes as ``webhook.body``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        self.client = client
        self.timeout = timeout

    @property
    def action_type(self) -> str:
        return "webhook"

    @property
    def description(self) -> str:
        return "Calls an external HTTP endpoint"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        config = self.config(node)
        url = self.render_text(config.url, context)
        headers = {str(k): str(v) for k, v in self.render(dict(config.headers), context).items()}
        body = self.render(config.body, context) if config.method in ("POST", "PUT", "PATCH") else None

        if self.client is not None:
            response = await self._send(self.client, config.method, url, headers, body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._send(client, config.method, url, headers, body)

        if not response.is_success:
            raise self.fail(
                "http_status",
                f"{config.method} {url} returned {response.status_code}",
            )

        try:
            response_body: Any = response.json()
        except ValueError:
            response_body = response.text

        return {"webhook": {"statusCode": response.status_code, "body": response_body}}

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
    ) -> httpx.Response:
        # A rendered body may be any JSON value; only text goes out verbatim
        if isinstance(body, str):
            payload: dict[str, Any] = {"content": body}
        elif body is not None:
            payload = {"json": body}
        else:
            payload = {}
        try:
            return await client.request(method=method, url=url, headers=headers, **payload)
        except httpx.HTTPError as e:
            raise self.fail("http", f"{method} {url} failed: {e}") from e
