"""
Timestamping and partition grouping of record lists.

The batcher turns a flat list of (key, value) records into one ordered list
per partition, so the producer issues one broker call per partition instead
of one per record.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .exceptions import PartitionCountUnavailableError
from .partitioner import PartitionStrategy, choose_partition
from .protocols import BrokerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Record:
    """A keyed record supplied by the caller."""

    key: Optional[bytes]
    value: Any


@dataclass(frozen=True)
class TimestampedRecord:
    """A record stamped with the wall-clock time it was batched at."""

    captured_at_millis: int
    key: Optional[bytes]
    value: Any


RecordLike = Union[Record, Tuple[Optional[bytes], Any]]
PartitionGroup = Dict[int, List[TimestampedRecord]]
Clock = Callable[[], int]


def current_millis() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def _unpack(record: RecordLike) -> Tuple[Optional[bytes], Any]:
    if isinstance(record, Record):
        return record.key, record.value
    if isinstance(record, (str, bytes, bytearray)):
        raise TypeError(
            f"Records must be Record instances or (key, value) pairs, got {record!r}"
        )
    try:
        key, value = record
    except (TypeError, ValueError) as e:
        raise TypeError(
            f"Records must be Record instances or (key, value) pairs, got {record!r}"
        ) from e
    return key, value


def add_timestamps(
    records: Iterable[RecordLike], clock: Clock = current_millis
) -> List[TimestampedRecord]:
    """Stamp each record, in input order, with the current time."""
    stamped = []
    for record in records:
        key, value = _unpack(record)
        stamped.append(TimestampedRecord(clock(), key, value))
    return stamped


def group_by_partition(
    records: Iterable[TimestampedRecord],
    topic: str,
    partition_count: int,
    strategy: PartitionStrategy,
) -> PartitionGroup:
    """
    Group stamped records by their chosen partition in a single pass.

    Records sharing a partition keep their input order.
    """
    groups: PartitionGroup = {}
    for record in records:
        partition = choose_partition(
            topic, partition_count, record.key, record.value, strategy
        )
        groups.setdefault(partition, []).append(record)
    return groups


class MessageBatcher:
    """
    Builds a fresh ``PartitionGroup`` per call.

    The partition count is looked up once per ``batch`` call and never
    memoized, so a topic that gains partitions is picked up on the next call.
    """

    def __init__(
        self,
        broker_client: BrokerClient,
        client_name: str,
        clock: Clock = current_millis,
    ) -> None:
        self._broker_client = broker_client
        self._client_name = client_name
        self._clock = clock

    def batch(
        self,
        records: Iterable[RecordLike],
        topic: str,
        strategy: PartitionStrategy,
    ) -> PartitionGroup:
        """
        Timestamp ``records`` and group them by partition.

        Args:
            records: Ordered (key, value) records
            topic: Target topic
            strategy: Strategy used to pick each record's partition

        Returns:
            Mapping of partition index to that partition's ordered records

        Raises:
            PartitionCountUnavailableError: When the topic's partition count
                cannot be resolved; no partition is chosen in that case
        """
        stamped = add_timestamps(records, self._clock)
        partition_count = resolve_partition_count(
            self._broker_client, self._client_name, topic
        )
        groups = group_by_partition(stamped, topic, partition_count, strategy)

        logger.debug(
            f"event#batch topic={topic} records={len(stamped)} "
            f"partitions_count={partition_count} groups={sorted(groups)}"
        )
        return groups


def resolve_partition_count(
    broker_client: BrokerClient, client_name: str, topic: str
) -> int:
    """
    Ask the broker client for the partition count of ``topic``.

    Any failure, or a non-positive count, is reported as
    ``PartitionCountUnavailableError``.
    """
    try:
        partition_count = broker_client.get_partitions_count(client_name, topic)
    except PartitionCountUnavailableError:
        raise
    except Exception as e:
        raise PartitionCountUnavailableError(
            f"Failed to resolve partition count for topic '{topic}'",
            cause=e,
            context={"topic": topic, "client_name": client_name},
        ) from e

    if not isinstance(partition_count, int) or partition_count <= 0:
        raise PartitionCountUnavailableError(
            f"Topic '{topic}' reported an invalid partition count: {partition_count!r}",
            context={"topic": topic, "client_name": client_name},
        )
    return partition_count
