"""Shared CLI options and connection helpers.

Every connection and adapter option can also come from an environment
variable, so credentials do not have to appear on the command line.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer

from .. import global_config as g
from ..clickhouse import ExecutionClient, HTTPClient, ValidationError, probe
from ..config import ConnectionSettings, KafkaSettings
from ..pipeline import StateTransitionEngine

# Connection
HostOpt = Annotated[str, typer.Option("--host", envvar=g.ENV_CH_HOST, help="ClickHouse host")]
PortOpt = Annotated[
    int, typer.Option("--port", envvar=g.ENV_CH_PORT, help="ClickHouse HTTP(S) port")
]
UserOpt = Annotated[
    str, typer.Option("--user", envvar=g.ENV_CH_USER, help="ClickHouse user (required)")
]
PasswordOpt = Annotated[
    str,
    typer.Option(
        "--password", envvar=g.ENV_CH_PASSWORD, help="ClickHouse password (required)"
    ),
]
DatabaseOpt = Annotated[
    str, typer.Option("--database", envvar=g.ENV_CH_DATABASE, help="ClickHouse database")
]
TlsOpt = Annotated[
    bool, typer.Option("--tls/--no-tls", envvar=g.ENV_CH_TLS, help="Use HTTPS")
]
VerifyTlsOpt = Annotated[
    bool,
    typer.Option("--verify-tls/--no-verify-tls", help="Verify the server certificate"),
]

# Kafka (for init/recreate)
KafkaBrokerOpt = Annotated[
    str,
    typer.Option(
        "--kafka-broker",
        envvar=g.ENV_KAFKA_BROKER,
        help="Kafka broker as seen from ClickHouse",
    ),
]
KafkaUserOpt = Annotated[
    str, typer.Option("--kafka-user", envvar=g.ENV_KAFKA_USER, help="Kafka SASL user")
]
KafkaPasswordOpt = Annotated[
    str,
    typer.Option("--kafka-password", envvar=g.ENV_KAFKA_PASSWORD, help="Kafka SASL password"),
]
KafkaProtocolOpt = Annotated[
    str,
    typer.Option(
        "--kafka-security-protocol",
        envvar=g.ENV_KAFKA_SECURITY_PROTOCOL,
        help="Security protocol for the Kafka engine",
    ),
]
TopicRtOpt = Annotated[
    str, typer.Option("--topic-rt", envvar=g.ENV_TOPIC_RT, help="Realtime topic name")
]
TopicHistoryOpt = Annotated[
    str,
    typer.Option("--topic-history", envvar=g.ENV_TOPIC_HISTORY, help="History topic name"),
]

# Output
LogDirOpt = Annotated[
    Path | None,
    typer.Option(
        "--log-dir",
        envvar=g.ENV_LOG_DIR,
        help="Write a run log file into this directory",
    ),
]
VerboseOpt = Annotated[bool, typer.Option("-v", "--verbose", help="Enable debug logging")]


def require_connection(settings: ConnectionSettings) -> None:
    if not settings.user or not settings.password:
        raise ValidationError("--user and --password are required")


def require_kafka(settings: KafkaSettings, hint: str = "") -> None:
    if not settings.has_credentials:
        raise ValidationError(f"--kafka-user and --kafka-password are required{hint}")


def open_client(settings: ConnectionSettings) -> ExecutionClient:
    """Build the execution client for a command."""
    return HTTPClient(settings)


@contextmanager
def open_engine(
    settings: ConnectionSettings,
    kafka: KafkaSettings | None = None,
) -> Iterator[StateTransitionEngine]:
    """Connect, probe once, and yield an engine bound to the client.

    The client is closed when the block exits, on success or error.

    Raises:
        ConnectivityError: If the probe query fails.
    """
    client = open_client(settings)
    try:
        probe(client)
        yield StateTransitionEngine(client, kafka=kafka)
    finally:
        client.close()


def banner(settings: ConnectionSettings, command: str, kafka: KafkaSettings | None = None) -> str:
    lines = [
        "Quote CH",
        f"  server  : {settings.base_url}",
        f"  command : {command}",
    ]
    if kafka is not None:
        lines.append(f"  kafka   : {kafka.broker}")
        lines.append(f"  topics  : {kafka.topic_rt}, {kafka.topic_history}")
    return "\n".join(lines)


def connection_settings(
    host: str, port: int, user: str, password: str, database: str, tls: bool, verify_tls: bool
) -> ConnectionSettings:
    return ConnectionSettings(
        user=user,
        password=password,
        host=host,
        port=port,
        database=database,
        tls=tls,
        verify_tls=verify_tls,
    )
