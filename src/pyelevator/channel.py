"""Pub/sub channel runtime.

Every client joins the same logical channels.  ``MqttChannel`` maps a
channel name onto an MQTT topic ``<prefix>/<channel>`` and hands inbound
payloads to the asyncio loop; the paho network thread never touches
client state directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pyelevator._constants import LEGACY_CHANNELS, MAIN_CHANNEL
from pyelevator.config import ElevatorConfig
from pyelevator.exceptions import ElevatorTransportError, MessageValidationError

ALL_CHANNELS: tuple[str, ...] = (MAIN_CHANNEL, *LEGACY_CHANNELS.values())


@dataclass(frozen=True)
class ChannelEvent:
    """One inbound payload and the channel it arrived on."""

    channel: str
    payload: dict[str, Any]


class Channel(Protocol):
    """Outbound side of the pub/sub channel."""

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None:
        """Fire-and-forget publish.  Raises :class:`ElevatorTransportError` on failure."""
        ...


def topic_for(prefix: str, channel: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/{channel}" if prefix else channel


def channel_from_topic(prefix: str, topic: str) -> str:
    prefix = prefix.strip("/")
    if prefix and topic.startswith(f"{prefix}/"):
        return topic[len(prefix) + 1 :]
    return topic


def encode_channel_payload(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(dict(payload), separators=(",", ":")).encode("utf-8")


def decode_channel_payload(payload: bytes, *, channel: str = "") -> dict[str, Any]:
    """Parse MQTT payload bytes into a JSON object.

    Raises
    ------
    MessageValidationError
        If the bytes are not UTF-8 JSON or do not decode to an object.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MessageValidationError(f"Payload is not JSON: {exc}", channel=channel) from exc
    if not isinstance(parsed, dict):
        raise MessageValidationError("Payload decoded to non-object JSON", channel=channel)
    return parsed


class MqttChannel:
    """Threaded paho-mqtt runtime that emits channel events onto an asyncio loop."""

    def __init__(
        self,
        config: ElevatorConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[ChannelEvent], None],
        client_id: str = "",
        channels: Iterable[str] = ALL_CHANNELS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._on_event = on_event
        self._client_id = client_id
        self._channels = tuple(channels)
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _handle_message(self, topic: str, payload: bytes) -> None:
        channel = channel_from_topic(self._config.mqtt_topic_prefix, topic)
        try:
            parsed = decode_channel_payload(payload, channel=channel)
        except MessageValidationError:
            self._logger.debug("Dropping undecodable payload topic=%s", topic, exc_info=True)
            return
        self._logger.debug("Received PUBLISH channel=%s parsed=%s", channel, parsed)
        self._loop.call_soon_threadsafe(self._on_event, ChannelEvent(channel=channel, payload=parsed))

    def start(self) -> None:
        """Connect to the broker and subscribe to every channel.

        Raises
        ------
        ElevatorTransportError
            If the initial connection cannot be established.
        """
        self.stop()
        config = self._config
        self._logger.debug(
            "MQTT channel start requested host=%s port=%s prefix=%s client_id=%s",
            config.mqtt_host,
            config.mqtt_port,
            config.mqtt_topic_prefix,
            self._client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.mqtt_tls:
            client.tls_set()

        topics = [(topic_for(config.mqtt_topic_prefix, channel), 0) for channel in self._channels]

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s topics=%d", reason_code, len(topics))
            if topics:
                c.subscribe(topics)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                self._handle_message(msg.topic, msg.payload)
            except Exception:
                self._logger.debug("MQTT message dispatch failure", exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        except OSError as exc:
            raise ElevatorTransportError(
                f"MQTT connect failed: {exc}",
                endpoint=f"{config.mqtt_host}:{config.mqtt_port}",
            ) from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None:
        client = self._client
        if client is None or not self._running:
            raise ElevatorTransportError("MQTT channel is not running", endpoint=channel)
        topic = topic_for(self._config.mqtt_topic_prefix, channel)
        info = client.publish(topic, encode_channel_payload(payload), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ElevatorTransportError(f"MQTT publish failed rc={info.rc}", endpoint=topic)
        self._logger.debug("Published channel=%s payload=%s", channel, payload)

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


class LoopbackHub:
    """In-process broker shared by the clients of one process.

    Like an MQTT broker, it delivers every publish to every attached
    channel, the publisher included.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._channels: list[LoopbackChannel] = []
        self._logger = logger or logging.getLogger(__name__)

    def connect(self, on_event: Callable[[ChannelEvent], None]) -> LoopbackChannel:
        channel = LoopbackChannel(self, on_event)
        self._channels.append(channel)
        return channel

    def _detach(self, channel: LoopbackChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    def _deliver(self, channel: str, payload: Mapping[str, Any]) -> None:
        # Round-trip through JSON so subscribers never share objects.
        wire = encode_channel_payload(payload)
        for subscriber in list(self._channels):
            try:
                subscriber.on_event(ChannelEvent(channel=channel, payload=decode_channel_payload(wire)))
            except Exception:
                self._logger.debug("Loopback delivery failed channel=%s", channel, exc_info=True)


class LoopbackChannel:
    """One client's attachment to a :class:`LoopbackHub`."""

    def __init__(self, hub: LoopbackHub, on_event: Callable[[ChannelEvent], None]) -> None:
        self._hub = hub
        self.on_event = on_event
        self._closed = False

    def publish(self, channel: str, payload: Mapping[str, Any]) -> None:
        if self._closed:
            raise ElevatorTransportError("Loopback channel is closed", endpoint=channel)
        self._hub._deliver(channel, payload)

    def close(self) -> None:
        self._closed = True
        self._hub._detach(self)
