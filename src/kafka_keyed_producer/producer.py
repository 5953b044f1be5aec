"""
Keyed Producer: synchronous, partition-aware production of record lists.

This module provides the public produce surface. It resolves a partition
strategy, groups records per partition and submits each partition's batch
through a ``BrokerClient``, stopping at the first failure.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence

from .batching import (
    Clock,
    MessageBatcher,
    PartitionGroup,
    RecordLike,
    current_millis,
    resolve_partition_count,
)
from .exceptions import ConfigurationError, PartitionCountUnavailableError
from .partitioner import (
    PartitionStrategy,
    choose_partition,
    fixed_partition,
    parse_strategy,
)
from .producer_config import ProducerConfig
from .protocols import BrokerClient
from .results import SUCCESS, Failure, ProduceResult

logger = logging.getLogger(__name__)


class KeyedProducer:
    """
    Synchronous producer that routes keyed records to partitions.

    Every produce call blocks until all of its sends finish or the first one
    fails. Failures are returned as ``Failure`` values, never raised. Groups
    sent before a failure stay sent; callers needing atomicity across
    partitions must provide it themselves.
    """

    def __init__(
        self,
        config: ProducerConfig,
        broker_client: BrokerClient,
        clock: Clock = current_millis,
    ) -> None:
        """
        Initialize the Keyed Producer.

        Args:
            config: Immutable configuration snapshot
            broker_client: Transport the producer delegates sends to
            clock: Millisecond clock used to stamp batched records
        """
        self._config = config
        self._broker_client = broker_client
        self._clock = clock

        logger.info(
            f"KeyedProducer initialized - client: {config.client_name}, "
            f"topics: {list(config.topics)}, "
            f"partition strategy: {config.partition_strategy.name}"
        )

    @property
    def config(self) -> ProducerConfig:
        return self._config

    def start_client(
        self, overrides: Optional[Mapping[str, Any]] = None
    ) -> ProduceResult:
        """
        Start the underlying broker client.

        Args:
            overrides: Config values applied on top of the snapshot for
                this startup only

        Returns:
            Success, or Failure carrying the startup error
        """
        try:
            config = self._config.with_overrides(overrides)
        except ConfigurationError as e:
            logger.error(f"Cannot start producer client: {e}")
            return Failure(e)

        logger.info(
            f"Starting producer client {config.client_name} "
            f"on {config.bootstrap_servers}"
        )
        return self._broker_client.start_client(
            config.endpoints, config.client_name, config.client_settings()
        )

    # Public produce API

    def produce(
        self,
        topic: str,
        records: Sequence[RecordLike],
        partition_strategy: Any = None,
    ) -> ProduceResult:
        """
        Synchronously produce ``records`` to ``topic``.

        Args:
            topic: Target topic
            records: (key, value) pairs or ``Record`` instances
            partition_strategy: Strategy, strategy name or callable overriding
                the configured strategy for this call

        Returns:
            Success if every partition batch was sent, else the first Failure
        """
        if partition_strategy is None:
            strategy = self._config.partition_strategy
        else:
            strategy = parse_strategy(partition_strategy)
        return self._produce_list(topic, records, strategy)

    def produce_sync(self, *args: Any) -> ProduceResult:
        """
        Synchronously produce, dispatching on the arguments given.

        - ``produce_sync(topic, records)``
        - ``produce_sync(key, value)`` to the first configured topic
        - ``produce_sync(topic, partition, records)``
        - ``produce_sync(topic, key, value)``
        - ``produce_sync(topic, partition, key, value)``

        A list as the last argument selects the record-list forms.
        """
        if len(args) == 2:
            if isinstance(args[1], list):
                return self.produce_list(args[0], args[1])
            return self.produce_value_to_default_topic(args[0], args[1])
        if len(args) == 3:
            if isinstance(args[2], list):
                return self.produce_list_to_partition(args[0], args[1], args[2])
            return self.produce_value(args[0], args[1], args[2])
        if len(args) == 4:
            return self.produce_value_to_partition(*args)

        raise TypeError(f"produce_sync() takes 2 to 4 arguments ({len(args)} given)")

    def produce_list(self, topic: str, records: Sequence[RecordLike]) -> ProduceResult:
        """Produce ``records`` to ``topic`` with the configured strategy."""
        return self._produce_list(topic, records, self._config.partition_strategy)

    def produce_list_to_partition(
        self, topic: str, partition: int, records: Sequence[RecordLike]
    ) -> ProduceResult:
        """Produce every record in ``records`` to ``topic``/``partition``."""
        return self._produce_list(topic, records, fixed_partition(partition))

    def produce_value_to_default_topic(
        self, key: Optional[bytes], value: Any
    ) -> ProduceResult:
        """Produce one record to the first configured topic."""
        topic = self._config.default_topic
        if topic is None:
            error = ConfigurationError(
                "No topic given and no topics configured for the producer",
                context={"client_name": self._config.client_name},
            )
            logger.error(str(error))
            return Failure(error)
        return self.produce_value(topic, key, value)

    def produce_value(
        self, topic: str, key: Optional[bytes], value: Any
    ) -> ProduceResult:
        """Produce one record to ``topic`` with the configured strategy."""
        client_name = self._config.client_name
        try:
            partitions_count = resolve_partition_count(
                self._broker_client, client_name, topic
            )
        except PartitionCountUnavailableError as e:
            logger.warning(f"Cannot produce to topic {topic}: {e}")
            return Failure(e)

        partition = choose_partition(
            topic, partitions_count, key, value, self._config.partition_strategy
        )
        logger.debug(
            f"event#produce topic={topic} key={key!r} "
            f"partitions_count={partitions_count} selected_partition={partition}"
        )
        return self._send(topic, partition, key, value)

    def produce_value_to_partition(
        self, topic: str, partition: int, key: Optional[bytes], value: Any
    ) -> ProduceResult:
        """Send one record straight to ``topic``/``partition``."""
        logger.debug(f"event#produce topic={topic} key={key!r} partition={partition}")
        return self._send(topic, partition, key, value)

    # Internal

    def _produce_list(
        self,
        topic: str,
        records: Sequence[RecordLike],
        strategy: PartitionStrategy,
    ) -> ProduceResult:
        logger.debug(f"event#produce_list topic={topic}")

        # Snapshot read once so the whole call uses one client name
        client_name = self._config.client_name
        batcher = MessageBatcher(self._broker_client, client_name, self._clock)
        try:
            groups = batcher.batch(records, topic, strategy)
        except PartitionCountUnavailableError as e:
            logger.warning(f"Cannot produce list to topic {topic}: {e}")
            return Failure(e)

        return self._produce_groups(client_name, topic, groups)

    def _produce_groups(
        self, client_name: str, topic: str, groups: PartitionGroup
    ) -> ProduceResult:
        for partition in sorted(groups):
            batch: List[Any] = groups[partition]
            logger.debug(
                f"event#produce_list_to_topic topic={topic} partition={partition} "
                f"records={len(batch)}"
            )
            result = self._broker_client.produce_sync(
                client_name, topic, partition, None, batch
            )
            if not result:
                logger.warning(
                    f"Produce to topic {topic} partition {partition} failed, "
                    f"abandoning remaining partitions: {result.reason}"
                )
                return result
        return SUCCESS

    def _send(
        self, topic: str, partition: int, key: Optional[bytes], value: Any
    ) -> ProduceResult:
        result = self._broker_client.produce_sync(
            self._config.client_name, topic, partition, key, value
        )
        if not result:
            logger.warning(
                f"Produce to topic {topic} partition {partition} failed: "
                f"{result.reason}"
            )
        return result
