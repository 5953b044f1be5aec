"""
Tests for the KeyedProducer facade.

This module tests every produce path, strategy resolution, the fail-fast
submission loop and client startup against a recording mock broker client.
"""

from typing import Dict, List, Optional

import pytest

from kafka_keyed_producer.batching import TimestampedRecord
from kafka_keyed_producer.exceptions import (
    ConfigurationError,
    PartitionCountUnavailableError,
    TransportError,
)
from kafka_keyed_producer.partitioner import RANDOM, CustomStrategy, hash_mod
from kafka_keyed_producer.producer import KeyedProducer
from kafka_keyed_producer.producer_config import ProducerConfig
from kafka_keyed_producer.results import Failure, Success


class MockBrokerClient:
    """Mock broker client recording every call."""

    def __init__(self, partitions: Optional[Dict[str, int]] = None):
        self.partitions = partitions or {"events": 3, "logs": 2}
        self.started: List[tuple] = []
        self.count_calls: List[tuple] = []
        self.sends: List[tuple] = []
        # partition -> error returned when sending to that partition
        self.failures: Dict[int, Exception] = {}

    def start_client(self, endpoints, client_name, producer_config):
        self.started.append((tuple(endpoints), client_name, dict(producer_config)))
        return Success()

    def get_partitions_count(self, client_name: str, topic: str) -> int:
        self.count_calls.append((client_name, topic))
        if topic not in self.partitions:
            raise PartitionCountUnavailableError(f"unknown topic {topic}")
        return self.partitions[topic]

    def produce_sync(self, client_name, topic, partition, key, value):
        self.sends.append((client_name, topic, partition, key, value))
        if partition in self.failures:
            return Failure(self.failures[partition])
        if partition >= self.partitions.get(topic, 0):
            return Failure(TransportError(f"partition {partition} out of range"))
        return Success()

    def sent_partitions(self) -> List[int]:
        return [send[2] for send in self.sends]


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self) -> int:
        self.now += 1
        return self.now


def create_producer(
    partitions: Optional[Dict[str, int]] = None, **config_overrides
) -> tuple:
    config_values = {"client_name": "test-client", "topics": ("events", "logs")}
    config_values.update(config_overrides)
    config = ProducerConfig(**config_values)
    client = MockBrokerClient(partitions)
    return KeyedProducer(config, client, clock=FakeClock()), client


def value_partition_strategy():
    """Custom strategy routing each record by its integer value."""
    return CustomStrategy(lambda topic, count, key, value: int(value) % count)


class TestProduceList:
    """Test record-list production."""

    def test_one_send_per_partition_in_ascending_order(self):
        producer, client = create_producer({"events": 4})

        result = producer.produce(
            "events",
            [(b"k", b"3"), (b"k", b"1"), (b"k", b"7"), (b"k", b"0")],
            partition_strategy=value_partition_strategy(),
        )

        assert result == Success()
        assert client.sent_partitions() == [0, 1, 3]
        _, topic, partition, key, batch = client.sends[2]
        assert topic == "events"
        assert key is None
        assert [r.value for r in batch] == [b"3", b"7"]
        assert all(isinstance(r, TimestampedRecord) for r in batch)

    def test_hash_mod_routes_same_key_to_one_partition(self):
        producer, client = create_producer({"events": 5})

        result = producer.produce_sync(
            "events", [(b"user-1", b"a"), (b"user-1", b"b"), (b"user-1", b"c")]
        )

        assert result
        assert len(client.sends) == 1
        _, _, partition, _, batch = client.sends[0]
        assert partition == hash_mod(b"user-1", 5)
        assert [r.value for r in batch] == [b"a", b"b", b"c"]

    def test_order_preserved_per_partition(self):
        producer, client = create_producer({"events": 8})
        k1 = b"key-0"
        k2 = next(
            f"key-{i}".encode()
            for i in range(1, 100)
            if hash_mod(f"key-{i}".encode(), 8) != hash_mod(k1, 8)
        )

        producer.produce_sync("events", [(k1, b"v1"), (k1, b"v2"), (k2, b"v3")])

        batches = {send[2]: send[4] for send in client.sends}
        assert [r.value for r in batches[hash_mod(k1, 8)]] == [b"v1", b"v2"]
        assert [r.value for r in batches[hash_mod(k2, 8)]] == [b"v3"]

    def test_fail_fast_stops_at_first_failure(self):
        producer, client = create_producer({"events": 3})
        error = TransportError("broker rejected batch")
        client.failures[1] = error

        result = producer.produce(
            "events",
            [(b"k", b"0"), (b"k", b"1"), (b"k", b"2")],
            partition_strategy=value_partition_strategy(),
        )

        assert result == Failure(error)
        assert result.reason is error
        # Group 0 sent, group 1 attempted, group 2 never attempted
        assert client.sent_partitions() == [0, 1]

    def test_partition_count_failure_attempts_nothing(self):
        producer, client = create_producer({"events": 3})

        result = producer.produce_sync("missing", [(b"k", b"v")])

        assert isinstance(result, Failure)
        assert isinstance(result.reason, PartitionCountUnavailableError)
        assert client.sends == []

    def test_partition_count_looked_up_once_per_call(self):
        producer, client = create_producer({"events": 3})

        producer.produce_sync("events", [(b"a", b"1"), (b"b", b"2"), (b"c", b"3")])

        assert client.count_calls == [("test-client", "events")]

    def test_empty_list_succeeds_without_sends(self):
        producer, client = create_producer()

        assert producer.produce_sync("events", []) == Success()
        assert client.sends == []

    def test_strategy_override_by_name(self):
        producer, client = create_producer({"events": 4})

        assert producer.produce("events", [(b"k", b"v")], partition_strategy="random")
        assert 0 <= client.sends[0][2] < 4

    def test_configured_strategy_used_by_default(self):
        producer, client = create_producer(
            {"events": 4}, partition_strategy=value_partition_strategy()
        )

        producer.produce("events", [(b"k", b"2")])

        assert client.sent_partitions() == [2]


class TestCustomStrategyContract:
    """Custom strategy output is trusted and passed to the broker client."""

    def test_out_of_range_partition_reaches_broker(self):
        producer, client = create_producer({"events": 3})
        calls = []

        def partition_fn(topic, count, key, value):
            calls.append((topic, count, key, value))
            return count

        result = producer.produce(
            "events", [(b"k", b"v")], partition_strategy=partition_fn
        )

        assert calls == [("events", 3, b"k", b"v")]
        assert client.sent_partitions() == [3]
        assert isinstance(result, Failure)
        assert isinstance(result.reason, TransportError)


class TestExplicitPartition:
    """Test explicit-partition paths."""

    def test_list_to_partition_ignores_hash(self):
        producer, client = create_producer({"events": 4})
        key = next(
            f"key-{i}".encode()
            for i in range(100)
            if hash_mod(f"key-{i}".encode(), 4) != 2
        )

        result = producer.produce_sync("events", 2, [(key, b"v")])

        assert result
        assert client.sent_partitions() == [2]
        assert client.sends[0][4][0].key == key

    def test_list_to_partition_single_group(self):
        producer, client = create_producer({"events": 4})

        producer.produce_sync("events", 1, [(b"a", b"1"), (b"b", b"2"), (b"c", b"3")])

        assert len(client.sends) == 1
        assert [r.value for r in client.sends[0][4]] == [b"1", b"2", b"3"]

    def test_fully_explicit_send_bypasses_lookup(self):
        producer, client = create_producer({"events": 4})

        result = producer.produce_sync("events", 3, b"key", b"value")

        assert result
        assert client.count_calls == []
        assert client.sends == [("test-client", "events", 3, b"key", b"value")]

    def test_fully_explicit_send_returns_failure(self):
        producer, client = create_producer({"events": 4})
        error = TransportError("leader not available")
        client.failures[0] = error

        assert producer.produce_sync("events", 0, b"key", b"value") == Failure(error)


class TestSingleRecord:
    """Test single-record convenience paths."""

    def test_key_value_goes_to_first_configured_topic(self):
        producer, client = create_producer({"events": 3, "logs": 2})

        result = producer.produce_sync(b"key", b"value")

        assert result
        assert client.count_calls == [("test-client", "events")]
        assert client.sends == [
            ("test-client", "events", hash_mod(b"key", 3), b"key", b"value")
        ]

    def test_key_value_without_topics_fails(self):
        producer, client = create_producer(topics=())

        result = producer.produce_sync(b"key", b"value")

        assert isinstance(result, Failure)
        assert isinstance(result.reason, ConfigurationError)
        assert client.sends == []

    def test_topic_key_value_uses_global_strategy(self):
        producer, client = create_producer({"logs": 2}, partition_strategy=RANDOM)

        assert producer.produce_sync("logs", b"key", b"value")
        _, topic, partition, key, value = client.sends[0]
        assert topic == "logs"
        assert 0 <= partition < 2
        assert (key, value) == (b"key", b"value")

    def test_single_record_sends_value_not_list(self):
        producer, client = create_producer()

        producer.produce_sync("events", b"key", b"value")

        assert client.sends[0][4] == b"value"

    def test_single_record_partition_count_failure(self):
        producer, client = create_producer({"events": 3})

        result = producer.produce_sync("missing", b"key", b"value")

        assert isinstance(result.reason, PartitionCountUnavailableError)
        assert client.sends == []


class TestProduceSyncDispatch:
    """Test argument-based dispatch of produce_sync."""

    @pytest.mark.parametrize("args", [(), ("events",), (1, 2, 3, 4, 5)])
    def test_wrong_arity(self, args):
        producer, _ = create_producer()
        with pytest.raises(TypeError, match="takes 2 to 4 arguments"):
            producer.produce_sync(*args)

    def test_list_value_selects_list_form(self):
        producer, client = create_producer({"events": 3})

        producer.produce_sync("events", [(b"k", b"v")])

        assert isinstance(client.sends[0][4], list)


class TestStartClient:
    """Test broker client startup."""

    def test_starts_with_config(self):
        producer, client = create_producer(
            endpoints=["broker-1:9092", "broker-2:9093"], required_acks=1
        )

        assert producer.start_client() == Success()

        endpoints, client_name, settings = client.started[0]
        assert endpoints == (("broker-1", 9092), ("broker-2", 9093))
        assert client_name == "test-client"
        assert settings["acks"] == 1

    def test_overrides_apply_to_startup_only(self):
        producer, client = create_producer()

        producer.start_client({"client_name": "other-client"})

        assert client.started[0][1] == "other-client"
        assert producer.config.client_name == "test-client"

    def test_invalid_overrides_return_failure(self):
        producer, client = create_producer()

        result = producer.start_client({"no_such_setting": 1})

        assert isinstance(result.reason, ConfigurationError)
        assert client.started == []
