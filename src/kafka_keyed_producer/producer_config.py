"""
Configuration snapshot for the Keyed Producer.

A ``ProducerConfig`` is immutable. The producer reads one snapshot per call,
so replacing the snapshot (``with_overrides``) never affects a call already
in progress.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit

from .exceptions import ConfigurationError
from .partitioner import HASH_MOD, PartitionStrategy, parse_strategy

logger = logging.getLogger(__name__)

Endpoint = Tuple[str, int]

DEFAULT_PORT = 9092
VALID_COMPRESSION = ("none", "gzip", "snappy", "lz4", "zstd")
_SSL_SCHEMES = ("kafka+ssl", "ssl")


def parse_endpoint(value: Union[str, Iterable[Any]]) -> Endpoint:
    """
    Parse one broker endpoint.

    Accepts ``"host:port"``, ``"host"``, ``"kafka://host:port"`` or a
    ``(host, port)`` pair.
    """
    if isinstance(value, str):
        text = value.strip()
        if "://" in text:
            parts = urlsplit(text)
            if not parts.hostname:
                raise ConfigurationError(f"Invalid broker endpoint: '{value}'")
            return parts.hostname, parts.port or DEFAULT_PORT
        host, _, port = text.rpartition(":")
        if not host:
            host, port = text, ""
        if not host:
            raise ConfigurationError(f"Invalid broker endpoint: '{value}'")
        try:
            return host, int(port) if port else DEFAULT_PORT
        except ValueError as e:
            raise ConfigurationError(f"Invalid broker port in '{value}'") from e

    try:
        host, port = value
        return str(host), int(port)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid broker endpoint: {value!r}") from e


def parse_endpoints(value: Union[str, Iterable[Any]]) -> Tuple[Endpoint, ...]:
    """Parse a comma separated string or a sequence of endpoints."""
    if isinstance(value, str):
        items = [item for item in value.split(",") if item.strip()]
    else:
        items = list(value)
    return tuple(parse_endpoint(item) for item in items)


def _parse_topics(value: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(value, str):
        return tuple(t.strip() for t in value.split(",") if t.strip())
    return tuple(value)


@dataclass(frozen=True)
class ProducerConfig:
    """Immutable producer configuration."""

    client_name: str = "kafka_keyed_producer"
    endpoints: Tuple[Endpoint, ...] = (("localhost", DEFAULT_PORT),)
    topics: Tuple[str, ...] = ()
    partition_strategy: PartitionStrategy = HASH_MOD

    # Transport settings handed to the broker client
    required_acks: int = -1
    ack_timeout_ms: int = 1000
    max_linger_ms: int = 0
    max_linger_count: int = 0
    max_retries: int = 3
    retry_backoff_ms: int = 500
    compression: str = "none"
    ssl: bool = False
    flush_timeout_seconds: float = 10.0
    metadata_timeout_seconds: float = 5.0

    # Raw client settings, passed through untouched
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Normalise loosely typed inputs on the frozen instance
        object.__setattr__(self, "endpoints", parse_endpoints(self.endpoints))
        object.__setattr__(self, "topics", _parse_topics(self.topics))
        object.__setattr__(
            self, "partition_strategy", parse_strategy(self.partition_strategy)
        )
        object.__setattr__(self, "extra", dict(self.extra))

        if not self.client_name:
            raise ValueError("client_name must not be empty")
        if not self.endpoints:
            raise ValueError("endpoints must contain at least one broker")
        if self.required_acks not in (-1, 0, 1):
            raise ValueError("required_acks must be -1, 0 or 1")
        if self.ack_timeout_ms <= 0:
            raise ValueError("ack_timeout_ms must be positive")
        if self.max_linger_ms < 0:
            raise ValueError("max_linger_ms must not be negative")
        if self.max_linger_count < 0:
            raise ValueError("max_linger_count must not be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.retry_backoff_ms < 0:
            raise ValueError("retry_backoff_ms must not be negative")
        if self.compression not in VALID_COMPRESSION:
            raise ValueError(f"compression must be one of {list(VALID_COMPRESSION)}")
        if self.flush_timeout_seconds <= 0:
            raise ValueError("flush_timeout_seconds must be positive")
        if self.metadata_timeout_seconds <= 0:
            raise ValueError("metadata_timeout_seconds must be positive")

    @property
    def default_topic(self) -> Optional[str]:
        """First configured topic, used when a call names no topic."""
        return self.topics[0] if self.topics else None

    @property
    def bootstrap_servers(self) -> str:
        return ",".join(f"{host}:{port}" for host, port in self.endpoints)

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "ProducerConfig":
        """
        Build a config from a plain mapping.

        Unknown keys are rejected so that typos fail at startup instead of
        being silently ignored.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown producer config keys: {unknown}. Known keys: {sorted(known)}"
            )
        try:
            return cls(**config)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("Invalid producer configuration", cause=e) from e

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **defaults: Any,
    ) -> "ProducerConfig":
        """
        Build a config from environment variables.

        ``KAFKA_URL`` holds comma separated ``kafka://`` or ``kafka+ssl://``
        URLs, as hosted Kafka services export them; an SSL scheme turns on
        ``ssl``. ``KAFKA_CLIENT_NAME``, ``KAFKA_TOPICS`` and
        ``KAFKA_PARTITION_STRATEGY`` are optional. Keyword arguments supply
        values for anything the environment leaves unset.
        """
        env = os.environ if environ is None else environ
        settings: Dict[str, Any] = dict(defaults)

        kafka_url = env.get("KAFKA_URL")
        if kafka_url:
            urls = [u.strip() for u in kafka_url.split(",") if u.strip()]
            settings["endpoints"] = parse_endpoints(urls)
            settings["ssl"] = any(
                urlsplit(u).scheme.lower() in _SSL_SCHEMES for u in urls
            )
        if env.get("KAFKA_CLIENT_NAME"):
            settings["client_name"] = env["KAFKA_CLIENT_NAME"]
        if env.get("KAFKA_TOPICS"):
            settings["topics"] = env["KAFKA_TOPICS"]
        if env.get("KAFKA_PARTITION_STRATEGY"):
            settings["partition_strategy"] = env["KAFKA_PARTITION_STRATEGY"]

        config = cls.from_dict(settings)
        logger.debug(
            f"Loaded producer config from environment: "
            f"client_name={config.client_name} endpoints={config.bootstrap_servers}"
        )
        return config

    def with_overrides(
        self, overrides: Optional[Mapping[str, Any]] = None
    ) -> "ProducerConfig":
        """Return a new snapshot with ``overrides`` applied."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown producer config keys: {unknown}")
        try:
            return replace(self, **overrides)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("Invalid producer configuration", cause=e) from e

    def client_settings(self) -> Dict[str, Any]:
        """
        Transport settings in confluent-kafka / librdkafka naming.

        Endpoints and client name are not included; the broker client
        receives them as separate arguments.
        """
        settings: Dict[str, Any] = {
            "acks": self.required_acks,
            "request.timeout.ms": self.ack_timeout_ms,
            "linger.ms": self.max_linger_ms,
            "retries": self.max_retries,
            "retry.backoff.ms": self.retry_backoff_ms,
            "compression.type": self.compression,
        }
        if self.max_linger_count > 0:
            settings["batch.num.messages"] = self.max_linger_count
        if self.max_retries > 0:
            # Retries must not reorder a partition's batch
            if self.required_acks == -1:
                settings["enable.idempotence"] = True
            else:
                settings["max.in.flight.requests.per.connection"] = 1
        if self.ssl:
            settings["security.protocol"] = "SSL"
        settings.update(self.extra)
        return settings
