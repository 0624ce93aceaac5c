"""
Kafka publisher for build log lines.

Every line is sent to the `build-logs` topic (configurable) with the key
``log`` and a JSON value identifying the project and deployment, so that
subscribers can follow one deployment's output live.
"""

import json
import logging
from typing import Any, Dict, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from ..executor.thread_pool import ManagedThreadPoolExecutor
from ..models.config import MessageBusConfig
from ..validation import MessageBusError
from .base import MessagePublisher

logger = logging.getLogger(__name__)

MESSAGE_KEY = b"log"


def build_producer_options(config: MessageBusConfig) -> Dict[str, Any]:
    """
    Translate the message bus settings into KafkaProducer keyword arguments.

    SASL over TLS is used when credentials are configured; the CA file is
    passed only when it exists.
    """
    options: Dict[str, Any] = {
        "bootstrap_servers": [config.broker],
        "client_id": config.client_id,
        "value_serializer": lambda value: json.dumps(value).encode("utf-8"),
    }
    if config.sasl_username:
        options.update(
            security_protocol="SASL_SSL",
            sasl_mechanism=(config.sasl_mechanism or "PLAIN").upper(),
            sasl_plain_username=config.sasl_username,
            sasl_plain_password=config.sasl_password,
            ssl_check_hostname=True,
        )
        if config.ssl_ca_file.is_file():
            options["ssl_cafile"] = str(config.ssl_ca_file)
        else:
            logger.warning(f"Kafka CA file {config.ssl_ca_file} not found, using system CAs")
    return options


class KafkaPublisher(MessagePublisher):
    """MessagePublisher backed by a kafka-python producer running in a thread pool."""

    def __init__(self, config: MessageBusConfig, project_uri: str, deployment_id: str,
                 pool: ManagedThreadPoolExecutor, producer_factory=KafkaProducer):
        self.config = config
        self.project_uri = project_uri
        self.deployment_id = deployment_id
        self.pool = pool
        self.producer_factory = producer_factory
        self.producer: Optional[KafkaProducer] = None

    async def connect(self) -> None:
        try:
            self.producer = await self.pool.run_async(
                self.producer_factory, **build_producer_options(self.config)
            )
        except (KafkaError, OSError, ValueError) as e:
            logger.error(f"Failed to connect to Kafka: {e}")
            raise MessageBusError(
                "Failed to connect to Kafka", details={"originalError": str(e)}
            ) from e
        logger.info(f"Kafka producer connected to {self.config.broker}")

    async def publish(self, text: str) -> None:
        if self.producer is None:
            raise MessageBusError("Kafka producer not initialized")

        value = {
            "PROJECT_URI": self.project_uri,
            "DEPLOYMENT_ID": self.deployment_id,
            "log": text,
        }
        try:
            await self.pool.run_async(self._send, value)
        except KafkaError as e:
            logger.error(f"Failed to publish log: {e}")
            raise MessageBusError(
                "Failed to publish log", details={"originalError": str(e)}
            ) from e

    def _send(self, value: Dict[str, str]) -> None:
        future = self.producer.send(self.config.topic, key=MESSAGE_KEY, value=value)
        future.get(timeout=self.config.send_timeout)

    async def disconnect(self) -> None:
        if self.producer is None:
            return
        producer, self.producer = self.producer, None
        try:
            await self.pool.run_async(producer.close, timeout=self.config.send_timeout)
            logger.info("Kafka producer closed")
        except Exception as e:
            logger.error(f"Error disconnecting from Kafka: {e}")
