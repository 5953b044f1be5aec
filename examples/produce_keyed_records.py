#!/usr/bin/env python3
"""
Keyed Producer Example

Routes keyed records to partitions and submits one batch per partition:

1. Load the producer config from KAFKA_URL / KAFKA_TOPICS (or defaults)
2. Start the confluent-kafka backed broker client
3. Produce a record list with the default MD5 key-hash strategy
4. Produce to an explicit partition and with a custom strategy
"""

import logging

from kafka_keyed_producer import (
    ConfluentBrokerClient,
    Failure,
    KeyedProducer,
    ProducerConfig,
)


def by_region(topic, partitions_count, key, value):
    """Custom strategy: EU keys on partition 0, everything else hashed over the rest."""
    if partitions_count == 1 or key.startswith(b"eu-"):
        return 0
    return 1 + sum(key) % (partitions_count - 1)


def main():
    logging.basicConfig(level=logging.DEBUG)

    config = ProducerConfig.from_env(topics=("orders",))
    producer = KeyedProducer(config, ConfluentBrokerClient.from_config(config))

    result = producer.start_client()
    if isinstance(result, Failure):
        print(f"❌ Could not start client: {result.reason}")
        return

    orders = [
        (b"customer-1", b'{"order": 1}'),
        (b"customer-2", b'{"order": 2}'),
        (b"customer-1", b'{"order": 3}'),
    ]

    # customer-1's orders land on one partition, in order
    print(f"Default strategy: {producer.produce_sync('orders', orders)}")

    # Every record to partition 0
    print(f"Explicit partition: {producer.produce_sync('orders', 0, orders)}")

    # Single record to the first configured topic
    print(f"Single record: {producer.produce_sync(b'customer-3', b'{}')}")

    eu_orders = [(b"eu-7", b"{}")]
    result = producer.produce("orders", eu_orders, partition_strategy=by_region)
    print(f"Custom strategy: {result}")


if __name__ == "__main__":
    main()
