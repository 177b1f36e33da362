from __future__ import annotations

import typer

from .base import configure_logging
from .commands.consumers import disable_command, enable_command, status_command
from .commands.pipeline import clean_command, drop_command, init_command, recreate_command

configure_logging()
app = typer.Typer(
    help="Manage the ClickHouse objects of the quotes pipeline.",
    context_settings={"help_option_names": ["-h", "--help"]},
    no_args_is_help=True,
)

app.command("init")(init_command)
app.command("recreate")(recreate_command)
app.command("clean")(clean_command)
app.command("drop")(drop_command)
app.command("enable")(enable_command)
app.command("disable")(disable_command)
app.command("status")(status_command)


def main() -> None:
    """Main entry point for package CLI.

    Invokes the Typer application, which handles command parsing and
    execution.

    Side Effects:
        - Processes CLI arguments and executes commands.
        - Exits non-zero on any fatal error.
    """
    app()


if __name__ == "__main__":
    main()
