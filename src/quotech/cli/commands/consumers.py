"""CLI commands for Kafka consumption and pipeline status."""

from __future__ import annotations

from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from ... import global_config as g
from .. import options
from ..base import BaseCLI, set_verbosity
from ..options import (
    DatabaseOpt,
    HostOpt,
    LogDirOpt,
    PasswordOpt,
    PortOpt,
    TlsOpt,
    UserOpt,
    VerboseOpt,
    VerifyTlsOpt,
)

cli = BaseCLI("consumers")

AdapterOpt = Annotated[
    list[str] | None,
    typer.Option(
        "--adapter",
        help="Kafka consumer table to act on (repeatable; default: all consumers)",
    ),
]


def enable_command(
    adapter: AdapterOpt = None,
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
    """Enable Kafka consumption (ATTACH the Kafka consumer tables)."""
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)

    def _enable() -> dict[str, Any]:
        options.require_connection(conn)
        with options.open_engine(conn) as engine:
            return engine.enable(adapter)

    cli.handle_cli_operation(
        operation="enable",
        op_callable=_enable,
        pre_message=options.banner(conn, "enable"),
        log_dir=log_dir,
    )


def disable_command(
    adapter: AdapterOpt = None,
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
    """Disable Kafka consumption (DETACH the Kafka consumer tables)."""
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)

    def _disable() -> dict[str, Any]:
        options.require_connection(conn)
        with options.open_engine(conn) as engine:
            return engine.disable(adapter)

    cli.handle_cli_operation(
        operation="disable",
        op_callable=_disable,
        pre_message=options.banner(conn, "disable"),
        log_dir=log_dir,
    )


def status_command(
    host: HostOpt = g.DEFAULT_CH_HOST,
    port: PortOpt = g.DEFAULT_CH_PORT,
    user: UserOpt = "",
    password: PasswordOpt = "",
    database: DatabaseOpt = g.DEFAULT_CH_DATABASE,
    tls: TlsOpt = True,
    verify_tls: VerifyTlsOpt = False,
    verbose: VerboseOpt = False,
) -> None:
    """Show attached pipeline objects, Kafka consumer activity and a data summary."""
    set_verbosity(verbose)
    conn = options.connection_settings(host, port, user, password, database, tls, verify_tls)

    def _status() -> dict[str, Any]:
        options.require_connection(conn)
        with options.open_engine(conn) as engine:
            return engine.status()

    result = cli.handle_cli_operation(
        operation="status",
        op_callable=_status,
        pre_message=options.banner(conn, "status"),
        show_result=False,
    )
    render_status(result)


def render_status(result: dict[str, Any], console: Console | None = None) -> None:
    """Render the status result as tables followed by the summary line.

    Args:
        result: Result of `StateTransitionEngine.status`.
        console: Rich Console instance (None to create new).
    """
    if console is None:
        console = Console()
    table = Table(title="Pipeline objects")
    table.add_column("object")
    table.add_column("state")
    table.add_column("detail")
    for item in result.get("items") or []:
        state = item.get("status", "")
        style = "green" if state == "attached" else "yellow"
        table.add_row(item.get("item", ""), f"[{style}]{state}[/{style}]", item.get("detail", ""))
    console.print(table)

    consumers = result.get("consumers") or []
    if consumers:
        table = Table(title="Kafka consumers")
        for column in ("table", "in use", "messages read", "last poll", "exceptions"):
            table.add_column(column)
        for row in consumers:
            table.add_row(
                row["table"],
                "yes" if row["in_use"] == "1" else "no",
                row["messages_read"],
                row["last_poll"],
                row["exceptions"],
            )
        console.print(table)
    else:
        console.print("No active Kafka consumers.")

    ticks = result.get("ticks") or []
    if ticks:
        table = Table(title="Ticks per symbol")
        for column in ("symbol", "ticks", "first", "last"):
            table.add_column(column)
        for row in ticks:
            table.add_row(row["symbol"], row["ticks"], row["first"], row["last"])
        console.print(table)

    candles = result.get("candles") or []
    if candles:
        table = Table(title="Candles per timeframe")
        table.add_column("tf")
        table.add_column("candles")
        for row in candles:
            table.add_row(row["tf"], row["candles"])
        console.print(table)

    console.print(result.get("message", ""))
