"""
Protocol interface for the broker client the producer delegates transport to.

The producer never talks to a broker itself. Connection bootstrap, wire
encoding, TLS and metadata caching all belong to a ``BrokerClient``
implementation such as ``ConfluentBrokerClient``.
"""

from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from .results import ProduceResult

if TYPE_CHECKING:
    from .batching import TimestampedRecord

Endpoint = Tuple[str, int]
BatchValue = Union[bytes, List["TimestampedRecord"]]


class BrokerClient(Protocol):
    """
    Protocol for the partitioned log client used by ``KeyedProducer``.

    Threading Considerations:
    - All methods are synchronous and block until the broker answers
    - The producer adds no locking; concurrent callers rely on the
      implementation being safe for shared use of one client name
    """

    @abstractmethod
    def start_client(
        self,
        endpoints: Sequence[Endpoint],
        client_name: str,
        producer_config: Mapping[str, Any],
    ) -> ProduceResult:
        """
        Establish the underlying connection for ``client_name``.

        Called once at producer startup, outside the hot path.

        Args:
            endpoints: Broker (host, port) pairs
            client_name: Name later calls use to address this client
            producer_config: Client settings passed through to the transport

        Returns:
            Success, or Failure carrying the startup error
        """
        ...

    @abstractmethod
    def get_partitions_count(self, client_name: str, topic: str) -> int:
        """
        Return the current partition count of ``topic``.

        Raises:
            PartitionCountUnavailableError: When the count cannot be resolved
        """
        ...

    @abstractmethod
    def produce_sync(
        self,
        client_name: str,
        topic: str,
        partition: int,
        key: Optional[bytes],
        value: BatchValue,
    ) -> ProduceResult:
        """
        Send one value, or an ordered list of timestamped records, to a partition.

        A list must be written to the partition log in the order given.

        Returns:
            Success, or Failure carrying a TransportError
        """
        ...
