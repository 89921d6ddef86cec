"""
MQTT Publish Session

Wraps broker connect/publish/disconnect around one batch of due data
loads. A fresh aiomqtt client is created per session.

Usage:
    async with PublishSession(config.mqtt) as session:
        await session.publish("emi/voltage", b"230.1")
"""

import asyncio
from typing import Awaitable, Callable

from aiomqtt import Client, MqttError

from emibridge.common.config import MqttConfig
from emibridge.common.exceptions import BrokerConnectionError, PublishError
from emibridge.common.logging_setup import get_service_logger

logger = get_service_logger("publish")


class PublishSession:
    """
    One broker connection spanning a batch.

    - open() failure raises BrokerConnectionError (batch-fatal)
    - publish() failure raises PublishError; the session stays open
    - close() never raises
    """

    def __init__(
        self,
        config: MqttConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep
        self._client: Client | None = None
        self.published_count = 0

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def _create_client(self) -> Client:
        return Client(
            self.config.host,
            port=self.config.port,
            username=self.config.username or None,
            password=self.config.password or None,
            identifier=self.config.client_id or None,
        )

    async def open(self) -> None:
        """
        Connect to the broker, retrying per connect_retry_backoff.

        Raises:
            BrokerConnectionError: If every attempt fails
        """
        if self._client is not None:
            return

        delays = list(self.config.connect_retry_backoff)
        attempts = len(delays) + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            client = self._create_client()
            try:
                await client.__aenter__()
            except (MqttError, OSError) as e:
                last_error = e
                if attempt < len(delays):
                    logger.warning(
                        f"Broker connect to {self.config.host}:{self.config.port} failed: {e}, "
                        f"retrying in {delays[attempt]:.1f}s ({attempt + 1}/{len(delays)})"
                    )
                    await self._sleep(delays[attempt])
                continue

            self._client = client
            self.published_count = 0
            logger.debug(f"Connected to broker {self.config.host}:{self.config.port}")
            return

        raise BrokerConnectionError(
            f"Cannot connect to broker {self.config.host}:{self.config.port}: {last_error}",
            host=self.config.host,
            port=self.config.port,
        ) from last_error

    async def publish(self, topic: str, payload: bytes | str) -> None:
        """
        Publish one message.

        Raises:
            PublishError: If the session is closed or the broker send fails
        """
        if self._client is None:
            raise PublishError("Session is not open", topic=topic)

        try:
            await self._client.publish(
                topic,
                payload=payload,
                qos=self.config.qos,
                retain=self.config.retain,
            )
        except MqttError as e:
            raise PublishError(str(e), topic=topic) from e

        self.published_count += 1

    async def close(self) -> None:
        """Best-effort disconnect"""
        client, self._client = self._client, None
        if client is None:
            return

        try:
            await client.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(f"Broker disconnect failed (ignored): {e}")
        else:
            logger.debug(
                f"Disconnected from broker after {self.published_count} messages"
            )

    async def __aenter__(self) -> "PublishSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False


def create_session_factory(config: MqttConfig) -> Callable[[], PublishSession]:
    """Factory producing a new PublishSession per batch"""
    def factory() -> PublishSession:
        return PublishSession(config)

    return factory
