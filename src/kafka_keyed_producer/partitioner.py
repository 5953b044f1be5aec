"""
Partition selection strategies.

Every strategy answers the same question: given a topic, its partition count
and a record, which partition index should the record go to. Strategies are a
closed set of three cases dispatched explicitly by ``choose_partition``.
"""

import hashlib
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .exceptions import ConfigurationError

PartitionFunction = Callable[[str, int, Optional[bytes], Any], int]


@dataclass(frozen=True)
class RandomStrategy:
    """Uniformly random partition; no key locality."""

    name = "random"


@dataclass(frozen=True)
class HashModStrategy:
    """MD5 of the key reduced modulo the partition count (key affinity)."""

    name = "hash_mod"


@dataclass(frozen=True)
class CustomStrategy:
    """Caller-supplied ``fn(topic, partition_count, key, value) -> partition``."""

    function: PartitionFunction
    name = "custom"


PartitionStrategy = Union[RandomStrategy, HashModStrategy, CustomStrategy]

RANDOM = RandomStrategy()
HASH_MOD = HashModStrategy()

_NAMED_STRATEGIES = {
    "random": RANDOM,
    "hash_mod": HASH_MOD,
    "md5": HASH_MOD,
}


def parse_strategy(value: Any) -> PartitionStrategy:
    """
    Coerce a configuration value into a partition strategy.

    Accepts a strategy instance, one of the names ``"random"``, ``"hash_mod"``
    or ``"md5"``, or a callable taking ``(topic, partition_count, key, value)``.

    Raises:
        ConfigurationError: If the value names no known strategy
    """
    if isinstance(value, (RandomStrategy, HashModStrategy, CustomStrategy)):
        return value

    if isinstance(value, str):
        try:
            return _NAMED_STRATEGIES[value.strip().lower()]
        except KeyError as e:
            raise ConfigurationError(
                f"Unknown partition strategy: '{value}'. "
                f"Available strategies: {sorted(_NAMED_STRATEGIES)}"
            ) from e

    if callable(value):
        return CustomStrategy(value)

    raise ConfigurationError(
        f"Partition strategy must be a name, a strategy or a callable, "
        f"got {type(value).__name__}"
    )


def fixed_partition(partition: int) -> CustomStrategy:
    """Strategy that sends every record to ``partition``."""
    return CustomStrategy(lambda _topic, _count, _key, _value: partition)


def random_partition(partition_count: int) -> int:
    return random.randrange(partition_count)


def hash_mod(key: Optional[bytes], partition_count: int) -> int:
    """
    Deterministic partition for ``key``.

    The full 128-bit MD5 digest is read as a big-endian integer, so the same
    key bytes and partition count give the same partition in every process.
    """
    digest = hashlib.md5(key or b"").digest()
    return int.from_bytes(digest, "big") % partition_count


def choose_partition(
    topic: str,
    partition_count: int,
    key: Optional[bytes],
    value: Any,
    strategy: PartitionStrategy,
) -> int:
    """
    Select the partition for one record.

    Custom strategy results are returned verbatim, without a range check.
    An out-of-range index is left for the broker client to reject.

    Raises:
        ConfigurationError: If ``strategy`` is not one of the three strategies
    """
    if isinstance(strategy, HashModStrategy):
        return hash_mod(key, partition_count)
    elif isinstance(strategy, RandomStrategy):
        return random_partition(partition_count)
    elif isinstance(strategy, CustomStrategy):
        return strategy.function(topic, partition_count, key, value)

    raise ConfigurationError(f"Unsupported partition strategy: {strategy!r}")
