"""CLI commands that create, recreate, clean and drop pipeline objects."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from ... import global_config as g
from ...clickhouse import ValidationError
from ...config import KafkaSettings
from ...pipeline import CleanFilter, CleanTarget, Scope, TimeRange
from .. import options
from ..base import BaseCLI, set_verbosity
from ..options import (
    DatabaseOpt,
    HostOpt,
    KafkaBrokerOpt,
    KafkaPasswordOpt,
    KafkaProtocolOpt,
    KafkaUserOpt,
    LogDirOpt,
    PasswordOpt,
    PortOpt,
    TlsOpt,
    TopicHistoryOpt,
    TopicRtOpt,
    UserOpt,
    VerboseOpt,
    VerifyTlsOpt,
)

cli = BaseCLI("pipeline")


def _kafka(
    broker: str, user: str, password: str, protocol: str, topic_rt: str, topic_history: str
) -> KafkaSettings:
    return KafkaSettings(
        user=user,
        password=password,
        broker=broker,
        security_protocol=protocol,
        topic_rt=topic_rt,
        topic_history=topic_history,
    )


def init_command(
    host: HostOpt = g.DEFAULT_CH_HOST,
    port: PortOpt = g.DEFAULT_CH_PORT,
    user: UserOpt = "",
    password: PasswordOpt = "",
    database: DatabaseOpt = g.DEFAULT_CH_DATABASE,
    tls: TlsOpt = True,
    verify_tls: VerifyTlsOpt = False,
    kafka_broker: KafkaBrokerOpt = g.DEFAULT_KAFKA_BROKER,
    kafka_user: KafkaUserOpt = "",
    kafka_password: KafkaPasswordOpt = "",
    kafka_security_protocol: KafkaProtocolOpt = g.DEFAULT_KAFKA_SECURITY_PROTOCOL,
    topic_rt: TopicRtOpt = g.DEFAULT_TOPIC_RT,
    topic_history: TopicHistoryOpt = g.DEFAULT_TOPIC_HISTORY,
    log_dir: LogDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Create pipeline objects (idempotent, IF NOT EXISTS).

    Kafka consumer tables are left detached: the pipeline is wired but does
    not consume until `enable` is run.
    """
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)
    kafka = _kafka(
        kafka_broker, kafka_user, kafka_password, kafka_security_protocol, topic_rt, topic_history
    )

    def _init() -> dict[str, Any]:
        options.require_connection(conn)
        options.require_kafka(kafka, " for init")
        with options.open_engine(conn, kafka) as engine:
            return engine.init()

    cli.handle_cli_operation(
        operation="init",
        op_callable=_init,
        pre_message=options.banner(conn, "init", kafka),
        log_dir=log_dir,
        log_context={"server": conn.base_url},
    )


def recreate_command(
    only_adapter: Annotated[
        bool,
        typer.Option("--only-adapter", help="Only Kafka engine tables + Kafka MVs"),
    ] = False,
    only_storage: Annotated[
        bool,
        typer.Option("--only-storage", help="Only storage tables + OHLC MV"),
    ] = False,
    only_views: Annotated[
        bool,
        typer.Option("--only-views", help="Only materialized views"),
    ] = False,
    backup: Annotated[
        bool,
        typer.Option(
            "--backup",
            help="Keep the data of recreated storage tables in <table>_bak_<UTC timestamp>",
        ),
    ] = False,
    host: HostOpt = g.DEFAULT_CH_HOST,
    port: PortOpt = g.DEFAULT_CH_PORT,
    user: UserOpt = "",
    password: PasswordOpt = "",
    database: DatabaseOpt = g.DEFAULT_CH_DATABASE,
    tls: TlsOpt = True,
    verify_tls: VerifyTlsOpt = False,
    kafka_broker: KafkaBrokerOpt = g.DEFAULT_KAFKA_BROKER,
    kafka_user: KafkaUserOpt = "",
    kafka_password: KafkaPasswordOpt = "",
    kafka_security_protocol: KafkaProtocolOpt = g.DEFAULT_KAFKA_SECURITY_PROTOCOL,
    topic_rt: TopicRtOpt = g.DEFAULT_TOPIC_RT,
    topic_history: TopicHistoryOpt = g.DEFAULT_TOPIC_HISTORY,
    log_dir: LogDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Drop and recreate objects (data in recreated tables is lost without --backup!).

    Without a filter every object is recreated. --only-storage keeps the
    Kafka MVs detached while quotes/ohlc are replaced and re-attaches them
    afterwards.

    --backup swaps existing storage tables out to timestamped copies
    instead of dropping their data.
    """
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)
    kafka = _kafka(
        kafka_broker, kafka_user, kafka_password, kafka_security_protocol, topic_rt, topic_history
    )

    def _recreate() -> dict[str, Any]:
        scope = Scope.from_flags(
            only_adapter=only_adapter, only_storage=only_storage, only_views=only_views
        )
        if backup and not scope.includes_storage:
            raise ValidationError("--backup only applies when storage tables are recreated")
        options.require_connection(conn)
        if scope.includes_adapters:
            options.require_kafka(kafka, " (or use --only-storage / --only-views)")
        typer.echo(f"  scope   : {scope.description}")
        with options.open_engine(conn, kafka) as engine:
            return engine.recreate(scope, backup=backup)

    cli.handle_cli_operation(
        operation="recreate",
        op_callable=_recreate,
        pre_message=options.banner(conn, "recreate", kafka),
        log_dir=log_dir,
        log_context={"server": conn.base_url},
    )


def clean_command(
    from_: Annotated[
        str | None, typer.Option("--from", help="Start of range (required)")
    ] = None,
    to: Annotated[str | None, typer.Option("--to", help="End of range (required)")] = None,
    symbol: Annotated[
        str | None, typer.Option("--symbol", "--key", help="Symbol filter (default: all)")
    ] = None,
    timeframe: Annotated[
        str | None,
        typer.Option("--timeframe", "--granularity", help="OHLC timeframe filter (default: all)"),
    ] = None,
    only_raw: Annotated[
        bool, typer.Option("--only-raw", "--only-ticks", help="Only clean quotes")
    ] = False,
    only_rollup: Annotated[
        bool, typer.Option("--only-rollup", "--only-ohlc", help="Only clean ohlc")
    ] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show plan without deleting")
    ] = False,
    host: HostOpt = g.DEFAULT_CH_HOST,
    port: PortOpt = g.DEFAULT_CH_PORT,
    user: UserOpt = "",
    password: PasswordOpt = "",
    database: DatabaseOpt = g.DEFAULT_CH_DATABASE,
    tls: TlsOpt = True,
    verify_tls: VerifyTlsOpt = False,
    log_dir: LogDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Delete a range of ticks and/or OHLC candles.

    The OHLC MV is detached for the duration of the delete and always
    re-attached afterwards, even if a delete fails.
    """
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)

    def _clean() -> dict[str, Any]:
        target = CleanTarget.from_flags(only_raw=only_raw, only_rollup=only_rollup)
        flt = CleanFilter(TimeRange.parse(from_, to), symbol=symbol, granularity=timeframe)
        options.require_connection(conn)
        typer.echo(f"  range     : {flt.time_range}")
        typer.echo(f"  symbol    : {symbol or 'ALL'}")
        typer.echo(f"  timeframe : {timeframe or 'ALL'}")
        typer.echo(f"  target    : {target.value}")
        with options.open_engine(conn) as engine:
            return engine.clean(flt, target, dry_run=dry_run)

    cli.handle_cli_operation(
        operation="clean",
        op_callable=_clean,
        pre_message=options.banner(conn, "clean"),
        log_dir=log_dir,
        log_dry_run=dry_run,
        log_context={"server": conn.base_url, "from": from_, "to": to},
    )


def drop_command(
    host: HostOpt = g.DEFAULT_CH_HOST,
    port: PortOpt = g.DEFAULT_CH_PORT,
    user: UserOpt = "",
    password: PasswordOpt = "",
    database: DatabaseOpt = g.DEFAULT_CH_DATABASE,
    tls: TlsOpt = True,
    verify_tls: VerifyTlsOpt = False,
    log_dir: LogDirOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Drop all pipeline objects, including detached ones."""
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)

    def _drop() -> dict[str, Any]:
        options.require_connection(conn)
        with options.open_engine(conn) as engine:
            return engine.drop()

    cli.handle_cli_operation(
        operation="drop",
        op_callable=_drop,
        pre_message=options.banner(conn, "drop"),
        log_dir=log_dir,
        log_context={"server": conn.base_url},
    )
