"""SwitchBot cloud API (v1.1) client used as the remote transport."""
import asyncio
import base64
import hashlib
import hmac
import logging
import ssl
import time
import uuid
from typing import Any, Dict, List

import aiohttp
import certifi
from aiohttp import ClientSession

from .const import API_BASE, API_SUCCESS_CODES, DEFAULT_REQUEST_TIMEOUT
from .errors import (
    TransportProtocolError,
    TransportRejected,
    TransportTimeout,
    TransportUnreachable,
    is_transient_code,
)
from .models import DeviceCommand, DeviceIdentity, StatusPayload, TransportKind

_LOGGER = logging.getLogger(__name__)


def sign_request(token: str, secret: str, t: str, nonce: str) -> str:
    """base64(HMAC-SHA256(secret, token + t + nonce))."""
    digest = hmac.new(
        secret.encode("utf-8"),
        msg=f"{token}{t}{nonce}".encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def envelope_code(payload: Any) -> int | None:
    if not isinstance(payload, dict):
        return None
    try:
        return int(payload.get("statusCode"))
    except (TypeError, ValueError):
        return None


class RemoteTransport:
    """Signed HTTP access to device status, commands and webhooks."""

    kind = TransportKind.REMOTE

    def __init__(self, token: str, secret: str, base_url: str = API_BASE):
        self._token = token
        self._secret = secret
        self._base_url = base_url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None
        self._ssl_context: ssl.SSLContext | None = None

    @classmethod
    async def create(cls, token: str, secret: str, hass=None, base_url: str = API_BASE):
        """Async-safe constructor."""
        self = cls(token, secret, base_url)

        def _make_ssl():
            return ssl.create_default_context(cafile=certifi.where())

        if hass is not None:
            self._ssl_context = await hass.async_add_executor_job(_make_ssl)
        else:
            self._ssl_context = _make_ssl()

        await self._init_session()
        return self

    async def _init_session(self):
        """Initialize aiohttp session with SSL context."""
        # Close existing session if already open (reloads)
        if self._session and not self._session.closed:
            await self._session.close()

        connector = aiohttp.TCPConnector(ssl=self._ssl_context)
        self._session = ClientSession(connector=connector)

    async def close(self):
        """Gracefully close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def configured(self) -> bool:
        return bool(self._token and self._secret)

    def _headers(self) -> Dict[str, str]:
        t = str(int(round(time.time() * 1000)))
        nonce = str(uuid.uuid4())
        return {
            "Authorization": self._token,
            "sign": sign_request(self._token, self._secret, t, nonce),
            "nonce": nonce,
            "t": t,
            "Content-Type": "application/json; charset=utf8",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Dict[str, Any] | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> Any:
        if self._session is None or self._session.closed:
            await self._init_session()
        url = f"{self._base_url}{path}"
        try:
            async with self._session.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                _LOGGER.debug("%s %s → HTTP %s", method, path, resp.status)
                if resp.status >= 400:
                    raise TransportRejected(resp.status)
                try:
                    return await resp.json(content_type=None)
                except ValueError as ex:
                    raise TransportProtocolError(f"{method} {path}: response is not JSON") from ex
        except asyncio.TimeoutError as ex:
            raise TransportTimeout(f"{method} {path} timed out after {timeout}s") from ex
        except aiohttp.ClientError as ex:
            raise TransportUnreachable(f"{method} {path} failed: {ex}") from ex

    async def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Request and insist on a success envelope."""
        data = await self._request(method, path, **kwargs)
        code = envelope_code(data)
        if code is None:
            raise TransportProtocolError(f"{method} {path}: missing statusCode")
        if code not in API_SUCCESS_CODES:
            raise TransportRejected(code, data.get("message") or None)
        return data

    async def fetch_status(self, identity: DeviceIdentity, config) -> StatusPayload:
        """GET the raw status envelope; the reconciler validates it."""
        data = await self._request(
            "GET", f"/devices/{identity.device_id}/status", timeout=config.request_timeout
        )
        code = envelope_code(data)
        if is_transient_code(code):
            # Cloud-side failure, not a device report; let the controller retry it
            raise TransportRejected(code, data.get("message") or None)
        return StatusPayload(TransportKind.REMOTE, data)

    async def send_command(self, identity: DeviceIdentity, command: DeviceCommand, config) -> Dict[str, Any]:
        _LOGGER.debug("Sending command → %s %s: %s", identity.device_id, command.command, command.parameter)
        result = await self._call(
            "POST",
            f"/devices/{identity.device_id}/commands",
            json=command.as_json(),
            timeout=config.request_timeout,
        )
        for followup in command.remote_followups:
            result = await self.send_command(identity, followup, config)
        return result

    async def get_devices(self) -> List[Dict[str, Any]]:
        """Return the account's device list (physical devices only)."""
        data = await self._call("GET", "/devices")
        body = data.get("body") or {}
        devices = body.get("deviceList") if isinstance(body, dict) else None
        if not isinstance(devices, list):
            raise TransportProtocolError("GET /devices: body.deviceList missing")
        return [d for d in devices if isinstance(d, dict) and d.get("deviceId")]

    async def setup_webhook(self, url: str) -> None:
        await self._call(
            "POST", "/webhook/setupWebhook", json={"action": "setupWebhook", "url": url, "deviceList": "ALL"}
        )
        _LOGGER.info("Registered webhook %s", url)

    async def query_webhook(self) -> List[str]:
        data = await self._call("POST", "/webhook/queryWebhook", json={"action": "queryUrl"})
        body = data.get("body") or {}
        urls = body.get("urls") if isinstance(body, dict) else None
        return list(urls or [])

    async def delete_webhook(self, url: str) -> None:
        await self._call("POST", "/webhook/deleteWebhook", json={"action": "deleteWebhook", "url": url})
        _LOGGER.info("Removed webhook %s", url)
