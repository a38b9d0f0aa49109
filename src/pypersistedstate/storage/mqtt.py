"""Storage backed by retained MQTT messages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from pypersistedstate.exceptions import PersistStorageError

ClientFactory = Callable[[str], Any]


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv5,
    )


class MqttRetainedStorage:
    """Keep each key as a retained message on ``{topic_prefix}/{key}``.

    ``set`` publishes the value retained, ``remove`` publishes an empty
    retained payload (which makes the broker drop the retained message),
    and ``get`` subscribes and waits up to *read_timeout* seconds for the
    broker to deliver the retained message.  A broker holding nothing for
    the topic simply never delivers, so a timeout reads as ``None``.

    paho-mqtt runs its network loop on its own thread; callbacks hand
    results back to the asyncio loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        topic_prefix: str = "pypersistedstate",
        client_id: str = "",
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        keepalive: int = 60,
        qos: int = 1,
        read_timeout: float = 1.0,
        connect_timeout: float = 10.0,
        publish_timeout: float = 10.0,
        client_factory: ClientFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic_prefix = topic_prefix.rstrip("/")
        self._client_id = client_id
        self._username = username
        self._password = password
        self._tls = tls
        self._keepalive = keepalive
        self._qos = qos
        self._read_timeout = read_timeout
        self._connect_timeout = connect_timeout
        self._publish_timeout = publish_timeout
        self._client_factory = client_factory or _default_client_factory
        self._logger = logger or logging.getLogger(__name__)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: Any = None
        self._connected: asyncio.Future[None] | None = None
        self._readers: dict[str, list[asyncio.Future[bytes]]] = {}

    @property
    def is_connected(self) -> bool:
        fut = self._connected
        return fut is not None and fut.done() and not fut.cancelled() and fut.exception() is None

    def topic_for(self, key: str) -> str:
        return f"{self._topic_prefix}/{key}"

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MqttRetainedStorage:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Connect to the broker and start the network loop."""
        if self._client is not None:
            return
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._connected = loop.create_future()

        client = self._client_factory(self._client_id)
        client.enable_logger(self._logger)
        if self._username is not None:
            client.username_pw_set(self._username, self._password)
        if self._tls:
            client.tls_set()

        def on_connect(_c: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            loop.call_soon_threadsafe(self._on_connect_result, reason_code)

        def on_message(_c: Any, _userdata: Any, msg: Any) -> None:
            loop.call_soon_threadsafe(self._deliver, msg.topic, bytes(msg.payload))

        def on_disconnect(_c: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            self._logger.debug("MQTT storage disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect
        self._client = client

        self._logger.debug("MQTT storage connecting host=%s port=%s", self._host, self._port)
        try:
            await asyncio.to_thread(client.connect, self._host, self._port, self._keepalive)
            client.loop_start()
            await asyncio.wait_for(asyncio.shield(self._connected), self._connect_timeout)
        except PersistStorageError:
            await self.close()
            raise
        except (OSError, TimeoutError) as exc:
            await self.close()
            raise PersistStorageError(f"MQTT connect to {self._host}:{self._port} failed: {exc}") from exc

    async def close(self) -> None:
        """Disconnect and stop the network loop."""
        client = self._client
        self._client = None
        self._connected = None
        for waiters in self._readers.values():
            for fut in waiters:
                if not fut.done():
                    fut.cancel()
        self._readers.clear()
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT storage network loop stopped")

    def _on_connect_result(self, reason_code: Any) -> None:
        fut = self._connected
        if fut is None or fut.done():
            return
        if reason_code.value != 0:
            fut.set_exception(PersistStorageError(f"MQTT connect refused: {reason_code}"))
            return
        fut.set_result(None)

    def _deliver(self, topic: str, payload: bytes) -> None:
        for fut in self._readers.pop(topic, []):
            if not fut.done():
                fut.set_result(payload)

    async def _require_client(self) -> Any:
        if self._client is None:
            await self.connect()
        return self._client

    # ------------------------------------------------------------------
    # Storage protocol
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        client = await self._require_client()
        loop = asyncio.get_running_loop()
        topic = self.topic_for(key)
        fut: asyncio.Future[bytes] = loop.create_future()
        self._readers.setdefault(topic, []).append(fut)
        try:
            client.subscribe(topic, qos=self._qos)
            payload = await asyncio.wait_for(fut, self._read_timeout)
        except TimeoutError:
            return None
        finally:
            waiters = self._readers.get(topic)
            if waiters is not None and fut in waiters:
                waiters.remove(fut)
                if not waiters:
                    del self._readers[topic]
            client.unsubscribe(topic)

        if not payload:
            return None
        return payload.decode("utf-8")

    async def set(self, key: str, value: str) -> None:
        await self._publish(key, value.encode("utf-8"))

    async def remove(self, key: str) -> None:
        await self._publish(key, b"")

    async def _publish(self, key: str, payload: bytes) -> None:
        client = await self._require_client()
        topic = self.topic_for(key)
        info = client.publish(topic, payload, qos=self._qos, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PersistStorageError(
                f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}",
                key=key,
            )
        try:
            await asyncio.to_thread(info.wait_for_publish, self._publish_timeout)
        except (RuntimeError, ValueError) as exc:
            raise PersistStorageError(f"MQTT publish to {topic} failed: {exc}", key=key) from exc
        if not info.is_published():
            raise PersistStorageError(f"MQTT publish to {topic} timed out", key=key)
        self._logger.debug("MQTT storage published topic=%s bytes=%d", topic, len(payload))
