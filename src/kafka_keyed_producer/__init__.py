"""
Kafka Keyed Producer - synchronous, partition-aware production of keyed records.

Records are routed to partitions by a pluggable strategy (MD5 key hash by
default), grouped per partition with their order preserved, and submitted one
partition batch at a time, stopping at the first failure.
"""

__version__ = "0.1.0"

# Batching
from .batching import MessageBatcher, PartitionGroup, Record, TimestampedRecord

# Broker client implementations
from .confluent_client import ConfluentBrokerClient

# Exception classes
from .exceptions import (
    ConfigurationError,
    KeyedProducerError,
    PartitionCountUnavailableError,
    TransportError,
)

# Partition selection
from .partitioner import (
    HASH_MOD,
    RANDOM,
    CustomStrategy,
    HashModStrategy,
    PartitionStrategy,
    RandomStrategy,
    choose_partition,
    parse_strategy,
)

# Main producer class
from .producer import KeyedProducer

# Configuration
from .producer_config import ProducerConfig

# Core protocol interfaces
from .protocols import BrokerClient

# Results
from .results import Failure, ProduceResult, Success

__all__ = [
    # Protocols
    "BrokerClient",
    # Exceptions
    "KeyedProducerError",
    "TransportError",
    "PartitionCountUnavailableError",
    "ConfigurationError",
    # Results
    "Success",
    "Failure",
    "ProduceResult",
    # Partition selection
    "PartitionStrategy",
    "RandomStrategy",
    "HashModStrategy",
    "CustomStrategy",
    "RANDOM",
    "HASH_MOD",
    "choose_partition",
    "parse_strategy",
    # Batching
    "Record",
    "TimestampedRecord",
    "PartitionGroup",
    "MessageBatcher",
    # Configuration
    "ProducerConfig",
    # Producer and clients
    "KeyedProducer",
    "ConfluentBrokerClient",
]
