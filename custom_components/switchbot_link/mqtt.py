"""Optional MQTT side publishing of every host notification."""
from __future__ import annotations

import enum
import logging
import uuid
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from paho.mqtt.client import CallbackAPIVersion, Client as MqttClient

from .const import MQTT_TOPIC_PREFIX
from .models import CommunicationFault, DeviceIdentity

_LOGGER = logging.getLogger(__name__)


def mqtt_topic(identity: DeviceIdentity, prop: str) -> str:
    return f"{MQTT_TOPIC_PREFIX}/{identity.device_type}/{identity.mac}/{prop}"


def mqtt_payload(value: Any) -> Optional[str]:
    """String form of a property value; None for values that are not published."""
    if isinstance(value, CommunicationFault):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


def _default_client_factory() -> MqttClient:
    return MqttClient(CallbackAPIVersion.VERSION2, client_id=f"switchbot-link-{uuid.uuid4().hex[:12]}")


class MqttPublisher:
    """Publish property changes to an MQTT broker from paho's network thread."""

    def __init__(
        self,
        url: str,
        options: Optional[Dict[str, Any]] = None,
        client_factory: Callable[[], MqttClient] = _default_client_factory,
    ):
        self._url = urlsplit(url)
        self._options = dict(options or {})
        self._client_factory = client_factory
        self._client: MqttClient | None = None
        self.connected = False

    def start(self) -> None:
        """Connect in the background; publishes before the connection is up are queued by paho."""
        client = self._client_factory()
        username = self._options.get("username", self._url.username)
        password = self._options.get("password", self._url.password)
        if username:
            client.username_pw_set(username, password)
        if self._url.scheme in ("mqtts", "ssl") or self._options.get("tls"):
            client.tls_set()

        def on_connect(_client, _userdata, _flags, reason_code, _properties=None):
            if reason_code.is_failure:
                _LOGGER.warning("MQTT connect to %s failed: %s", self._url.hostname, reason_code)
                return
            self.connected = True
            _LOGGER.info("MQTT connected to %s", self._url.hostname)

        def on_disconnect(_client, _userdata, _flags, reason_code, _properties=None):
            self.connected = False
            _LOGGER.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect

        port = self._url.port or (8883 if self._url.scheme in ("mqtts", "ssl") else 1883)
        client.connect_async(self._url.hostname or "localhost", port, keepalive=int(self._options.get("keepalive", 60)))
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        client.disconnect()
        client.loop_stop()
        self.connected = False

    def publish(self, identity: DeviceIdentity, prop: str, value: Any) -> bool:
        payload = mqtt_payload(value)
        if self._client is None or payload is None:
            return False
        topic = mqtt_topic(identity, prop)
        info = self._client.publish(
            topic, payload, qos=int(self._options.get("qos", 0)), retain=bool(self._options.get("retain", False))
        )
        _LOGGER.debug("MQTT publish topic=%s payload=%s rc=%s", topic, payload, getattr(info, "rc", None))
        return getattr(info, "rc", 0) == 0
