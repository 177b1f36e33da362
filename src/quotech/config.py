"""Connection and adapter settings.

Builds on the defaults in `quotech.global_config`. Both settings objects
are immutable for the lifetime of a command.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from . import global_config as g


@dataclass(frozen=True)
class ConnectionSettings:
    """How to reach the ClickHouse HTTP interface."""

    user: str
    password: str
    host: str = g.DEFAULT_CH_HOST
    port: int = g.DEFAULT_CH_PORT
    database: str = g.DEFAULT_CH_DATABASE
    tls: bool = True
    verify_tls: bool = False
    timeout_s: float = g.DEFAULT_CH_TIMEOUT_S

    @property
    def scheme(self) -> str:
        return "https" if self.tls else "http"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    def redacted(self) -> ConnectionSettings:
        """Return a copy safe to print or log."""
        return replace(self, password="***" if self.password else "")


@dataclass(frozen=True)
class KafkaSettings:
    """Kafka connection details rendered into the Kafka engine tables.

    The broker address is the one ClickHouse uses, which is usually an
    in-cluster name (``kafka:9092``) rather than the address reachable
    from the operator's machine.
    """

    user: str = ""
    password: str = ""
    broker: str = g.DEFAULT_KAFKA_BROKER
    topic_rt: str = g.DEFAULT_TOPIC_RT
    topic_history: str = g.DEFAULT_TOPIC_HISTORY
    security_protocol: str = g.DEFAULT_KAFKA_SECURITY_PROTOCOL
    sasl_mechanism: str = g.DEFAULT_KAFKA_SASL_MECHANISM
    skip_broken_messages: int = g.DEFAULT_KAFKA_SKIP_BROKEN_MESSAGES

    @property
    def has_credentials(self) -> bool:
        return bool(self.user and self.password)
