"""Inbound webhook server for cloud push events."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from aiohttp import web

_LOGGER = logging.getLogger(__name__)

PushHandler = Callable[[str, Dict[str, Any]], Awaitable[bool]]


def extract_event(event: Any) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Return (device_id, context) for a push event, or None when it carries no device."""
    if not isinstance(event, dict):
        return None
    context = event.get("context")
    if not isinstance(context, dict):
        return None
    device_id = event.get("deviceId") or context.get("deviceId")
    if not device_id and context.get("deviceMac"):
        device_id = str(context["deviceMac"]).replace(":", "")
    if not device_id:
        return None
    return str(device_id).upper(), context


class WebhookServer:
    """aiohttp application accepting POSTed event JSON."""

    def __init__(self, handler: PushHandler, host: str = "0.0.0.0", port: int = 8090, path: str = "/"):
        self._handler = handler
        self._host = host
        self._port = port
        self._path = path if path.startswith("/") else f"/{path}"
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/", self._handle)
        if self._path != "/":
            app.router.add_post(self._path, self._handle)
        return app

    async def _handle(self, request: web.Request) -> web.Response:
        try:
            event = await request.json()
        except ValueError:
            _LOGGER.warning("Webhook body is not JSON")
            return web.json_response({"status": "error", "message": "invalid JSON"}, status=400)
        _LOGGER.debug("Webhook event: %s", event)
        parsed = extract_event(event)
        if parsed is None:
            _LOGGER.warning("Webhook event without a device: %s", event)
            return web.json_response({"status": "error", "message": "no device"}, status=400)
        device_id, context = parsed
        accepted = await self._handler(device_id, context)
        return web.json_response({"status": "ok" if accepted else "ignored"})

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError as ex:
            await runner.cleanup()
            _LOGGER.error("Webhook server could not listen on %s:%s: %s", self._host, self._port, ex)
            raise
        self._runner = runner
        _LOGGER.info("Webhook server listening on %s:%s%s", self._host, self._port, self._path)

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
