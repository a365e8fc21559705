"""Tests for the cloud API client, against a local aiohttp server."""

from __future__ import annotations

import base64
import contextlib
import hashlib
import hmac

import pytest
from aiohttp import web
from aiohttp import test_utils

from custom_components.switchbot_link.config import DeviceConfig
from custom_components.switchbot_link.errors import TransportProtocolError, TransportRejected
from custom_components.switchbot_link.models import DeviceCommand, DeviceIdentity, TransportKind
from custom_components.switchbot_link.remote import RemoteTransport, sign_request

from .conftest import DEVICE_ID, envelope

TOKEN = "token-abc"
SECRET = "secret-xyz"
IDENTITY = DeviceIdentity(DEVICE_ID, "Color Bulb")
CONFIG = DeviceConfig(request_timeout=5.0)


@contextlib.asynccontextmanager
async def api(routes):
    """Serve routes locally and yield a RemoteTransport pointed at them."""
    app = web.Application()
    app.router.add_routes(routes)
    server = test_utils.TestServer(app)
    await server.start_server()
    remote = await RemoteTransport.create(TOKEN, SECRET, base_url=str(server.make_url("/")))
    try:
        yield remote
    finally:
        await remote.close()
        await server.close()


def test_sign_request_is_hmac_sha256_of_token_time_nonce() -> None:
    expected = base64.b64encode(
        hmac.new(SECRET.encode(), f"{TOKEN}1700000000000nonce-1".encode(), hashlib.sha256).digest()
    ).decode()

    assert sign_request(TOKEN, SECRET, "1700000000000", "nonce-1") == expected
    assert sign_request(TOKEN, SECRET, "1700000000000", "nonce-2") != expected


class TestStatus:
    @pytest.mark.asyncio
    async def test_request_is_signed(self) -> None:
        seen = {}

        async def status(request: web.Request) -> web.Response:
            seen.update({key: request.headers.get(key) for key in ("Authorization", "sign", "t", "nonce")})
            return web.json_response(envelope({"power": "on"}))

        async with api([web.get(f"/devices/{DEVICE_ID}/status", status)]) as remote:
            payload = await remote.fetch_status(IDENTITY, CONFIG)

        assert payload.source is TransportKind.REMOTE
        assert payload.raw["body"] == {"power": "on"}
        assert seen["Authorization"] == TOKEN
        assert seen["sign"] == sign_request(TOKEN, SECRET, seen["t"], seen["nonce"])

    @pytest.mark.asyncio
    async def test_failure_envelope_is_returned_raw(self) -> None:
        async def status(request: web.Request) -> web.Response:
            return web.json_response(envelope(code=161, message="device offline"))

        async with api([web.get(f"/devices/{DEVICE_ID}/status", status)]) as remote:
            payload = await remote.fetch_status(IDENTITY, CONFIG)

        assert payload.raw["statusCode"] == 161

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self) -> None:
        async def status(request: web.Request) -> web.Response:
            return web.Response(status=503)

        async with api([web.get(f"/devices/{DEVICE_ID}/status", status)]) as remote:
            with pytest.raises(TransportRejected) as exc:
                await remote.fetch_status(IDENTITY, CONFIG)

        assert exc.value.code == 503
        assert exc.value.transient

    @pytest.mark.asyncio
    async def test_server_error_envelope_is_transient(self) -> None:
        async def status(request: web.Request) -> web.Response:
            return web.json_response(envelope(code=500, message="internal error"))

        async with api([web.get(f"/devices/{DEVICE_ID}/status", status)]) as remote:
            with pytest.raises(TransportRejected) as exc:
                await remote.fetch_status(IDENTITY, CONFIG)

        assert exc.value.code == 500
        assert exc.value.transient

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        async def status(request: web.Request) -> web.Response:
            return web.Response(text="<html>gateway</html>")

        async with api([web.get(f"/devices/{DEVICE_ID}/status", status)]) as remote:
            with pytest.raises(TransportProtocolError):
                await remote.fetch_status(IDENTITY, CONFIG)


class TestCommands:
    @pytest.mark.asyncio
    async def test_command_and_followups_are_posted(self) -> None:
        bodies = []

        async def commands(request: web.Request) -> web.Response:
            bodies.append(await request.json())
            return web.json_response(envelope())

        command = DeviceCommand(
            "setColor", "255:0:0", remote_followups=(DeviceCommand("setBrightness", "30"),)
        )
        async with api([web.post(f"/devices/{DEVICE_ID}/commands", commands)]) as remote:
            await remote.send_command(IDENTITY, command, CONFIG)

        assert bodies == [
            {"commandType": "command", "command": "setColor", "parameter": "255:0:0"},
            {"commandType": "command", "command": "setBrightness", "parameter": "30"},
        ]

    @pytest.mark.asyncio
    async def test_device_fault_is_not_transient(self) -> None:
        async def commands(request: web.Request) -> web.Response:
            return web.json_response(envelope(code=161, message="device offline"))

        async with api([web.post(f"/devices/{DEVICE_ID}/commands", commands)]) as remote:
            with pytest.raises(TransportRejected) as exc:
                await remote.send_command(IDENTITY, DeviceCommand("turnOn"), CONFIG)

        assert exc.value.code == 161
        assert not exc.value.transient


class TestAccount:
    @pytest.mark.asyncio
    async def test_get_devices(self) -> None:
        async def devices(request: web.Request) -> web.Response:
            return web.json_response(
                envelope(
                    {
                        "deviceList": [
                            {"deviceId": "A1", "deviceType": "Curtain"},
                            {"deviceType": "Meter"},
                        ],
                        "infraredRemoteList": [{"deviceId": "IR1"}],
                    }
                )
            )

        async with api([web.get("/devices", devices)]) as remote:
            result = await remote.get_devices()

        assert result == [{"deviceId": "A1", "deviceType": "Curtain"}]

    @pytest.mark.asyncio
    async def test_webhook_registration(self) -> None:
        calls = []

        async def setup(request: web.Request) -> web.Response:
            calls.append(await request.json())
            return web.json_response(envelope())

        async def query(request: web.Request) -> web.Response:
            return web.json_response(envelope({"urls": ["http://example.invalid/hook"]}))

        routes = [web.post("/webhook/setupWebhook", setup), web.post("/webhook/queryWebhook", query)]
        async with api(routes) as remote:
            assert await remote.query_webhook() == ["http://example.invalid/hook"]
            await remote.setup_webhook("http://example.invalid/other")

        assert calls == [{"action": "setupWebhook", "url": "http://example.invalid/other", "deviceList": "ALL"}]

    @pytest.mark.asyncio
    async def test_rejected_credentials(self) -> None:
        async def devices(request: web.Request) -> web.Response:
            return web.json_response({"message": "Unauthorized"}, status=401)

        async with api([web.get("/devices", devices)]) as remote:
            with pytest.raises(TransportRejected) as exc:
                await remote.get_devices()

        assert exc.value.code == 401
