"""
Broker client implementation using confluent-kafka Producer.

This module provides a concrete implementation of the BrokerClient protocol.
Each send produces to one fixed partition and flushes before returning, so
calls are synchronous from the caller's point of view.
"""

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka import Producer as ConfluentProducer

from .batching import TimestampedRecord
from .exceptions import PartitionCountUnavailableError, TransportError
from .protocols import BatchValue, Endpoint
from .results import SUCCESS, Failure, ProduceResult

if TYPE_CHECKING:
    from .producer_config import ProducerConfig

logger = logging.getLogger(__name__)


class ConfluentBrokerClient:
    """
    Broker client backed by one confluent-kafka Producer per client name.

    Settings controlling the client itself, not the individual sends:
    - flush_timeout_seconds: Max wait for delivery reports per send
    - metadata_timeout_seconds: Max wait for topic metadata
    """

    def __init__(
        self,
        flush_timeout_seconds: float = 10.0,
        metadata_timeout_seconds: float = 5.0,
    ) -> None:
        self._flush_timeout_seconds = flush_timeout_seconds
        self._metadata_timeout_seconds = metadata_timeout_seconds
        self._producers: Dict[str, ConfluentProducer] = {}

    @classmethod
    def from_config(cls, config: "ProducerConfig") -> "ConfluentBrokerClient":
        """Create a client using the timeouts of a producer config."""
        return cls(
            flush_timeout_seconds=config.flush_timeout_seconds,
            metadata_timeout_seconds=config.metadata_timeout_seconds,
        )

    def start_client(
        self,
        endpoints: Sequence[Endpoint],
        client_name: str,
        producer_config: Mapping[str, Any],
    ) -> ProduceResult:
        """Create the confluent-kafka producer registered under ``client_name``."""
        if client_name in self._producers:
            logger.debug(f"Producer client {client_name} already started")
            return SUCCESS

        kafka_config = {
            "bootstrap.servers": ",".join(f"{host}:{port}" for host, port in endpoints),
            "client.id": client_name,
            **producer_config,
        }

        try:
            self._producers[client_name] = ConfluentProducer(kafka_config)
        except (KafkaException, ValueError, TypeError) as e:
            logger.error(f"Failed to start producer client {client_name}: {e}")
            return Failure(
                TransportError(
                    f"Failed to start producer client '{client_name}'",
                    cause=e,
                    context={"bootstrap_servers": kafka_config["bootstrap.servers"]},
                )
            )

        logger.info(
            f"Producer client {client_name} started on "
            f"{kafka_config['bootstrap.servers']}"
        )
        return SUCCESS

    def get_partitions_count(self, client_name: str, topic: str) -> int:
        """
        Get the partition count of ``topic`` from cluster metadata.

        Raises:
            PartitionCountUnavailableError: When the client is not started, the
                metadata request fails or the topic is unknown
        """
        context = {"topic": topic, "client_name": client_name}
        producer = self._producers.get(client_name)
        if producer is None:
            raise PartitionCountUnavailableError(
                f"Producer client '{client_name}' is not started", context=context
            )

        try:
            metadata = producer.list_topics(
                topic=topic, timeout=self._metadata_timeout_seconds
            )
        except KafkaException as e:
            raise PartitionCountUnavailableError(
                f"Failed to fetch metadata for topic '{topic}'",
                cause=e,
                context=context,
            ) from e

        topic_metadata = metadata.topics.get(topic)
        if topic_metadata is None:
            raise PartitionCountUnavailableError(
                f"Topic '{topic}' not found in cluster metadata", context=context
            )
        if topic_metadata.error is not None:
            raise PartitionCountUnavailableError(
                f"Metadata error for topic '{topic}'",
                cause=KafkaException(topic_metadata.error),
                context=context,
            )

        partitions_count = len(topic_metadata.partitions)
        logger.debug(f"Topic {topic} has {partitions_count} partitions")
        return partitions_count

    def produce_sync(
        self,
        client_name: str,
        topic: str,
        partition: int,
        key: Optional[bytes],
        value: BatchValue,
    ) -> ProduceResult:
        """
        Produce ``value`` to ``topic``/``partition`` and wait for delivery.

        A list of timestamped records is produced in order, each with its own
        key and captured timestamp; ``key`` is ignored in that case.
        """
        context = {"topic": topic, "partition": partition, "client_name": client_name}
        producer = self._producers.get(client_name)
        if producer is None:
            return Failure(
                TransportError(
                    f"Producer client '{client_name}' is not started", context=context
                )
            )

        # librdkafka treats -1 as unassigned and would pick a partition itself
        valid_index = isinstance(partition, int) and not isinstance(partition, bool)
        if not valid_index or partition < 0:
            logger.error(f"Invalid partition {partition!r} for topic {topic}")
            return Failure(
                TransportError(
                    f"Invalid partition {partition!r} for topic '{topic}'",
                    context=context,
                )
            )

        messages = _as_messages(key, value)
        delivery_errors: List[KafkaError] = []

        def on_delivery(err: Optional[KafkaError], msg: Any) -> None:
            if err is not None:
                delivery_errors.append(err)

        try:
            for message_key, message_value, timestamp in messages:
                kwargs: Dict[str, Any] = {
                    "value": message_value,
                    "key": message_key,
                    "partition": partition,
                    "on_delivery": on_delivery,
                }
                if timestamp is not None:
                    kwargs["timestamp"] = timestamp
                producer.produce(topic, **kwargs)
            remaining = producer.flush(self._flush_timeout_seconds)
        except (KafkaException, BufferError, TypeError) as e:
            logger.error(f"Failed to produce to {topic}/{partition}: {e}")
            return Failure(
                TransportError(
                    f"Failed to produce to topic '{topic}' partition {partition}",
                    cause=e,
                    context=context,
                )
            )

        if delivery_errors:
            first_error = delivery_errors[0]
            logger.error(f"Delivery to {topic}/{partition} failed: {first_error}")
            return Failure(
                TransportError(
                    f"Delivery to topic '{topic}' partition {partition} failed",
                    cause=KafkaException(first_error),
                    context={**context, "failed": len(delivery_errors)},
                )
            )

        if remaining:
            return Failure(
                TransportError(
                    f"{remaining} messages not delivered to topic '{topic}' "
                    f"partition {partition} within {self._flush_timeout_seconds}s",
                    context={**context, "remaining": remaining},
                )
            )

        return SUCCESS

    def close(self, timeout: Optional[float] = None) -> None:
        """Flush and forget every started producer."""
        flush_timeout = self._flush_timeout_seconds if timeout is None else timeout
        for client_name, producer in list(self._producers.items()):
            remaining = producer.flush(flush_timeout)
            if remaining:
                logger.warning(
                    f"Producer client {client_name} closed with "
                    f"{remaining} undelivered messages"
                )
        self._producers.clear()


def _as_messages(
    key: Optional[bytes], value: BatchValue
) -> List[Tuple[Optional[bytes], Any, Optional[int]]]:
    if isinstance(value, list):
        messages = []
        for item in value:
            if isinstance(item, TimestampedRecord):
                messages.append((item.key, item.value, item.captured_at_millis))
            else:
                messages.append((key, item, None))
        return messages
    return [(key, value, None)]
