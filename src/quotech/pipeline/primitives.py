"""Idempotent building blocks shared by every pipeline operation.

None of these read object state first. ClickHouse has no query that is safe
for attached, detached and absent objects alike (detached objects vanish
from `system.tables`), so each primitive is a fixed statement sequence that
converges from any starting state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from ..clickhouse.client import ExecutionClient
from ..clickhouse.errors import ErrorKind, QueryError, SchemaOperationError
from .catalog import PipelineObject

logger = logging.getLogger(__name__)


class StepRunner:
    """Executes labelled statements and keeps a record of each step.

    The record doubles as the `items` list of the operation's result.
    """

    def __init__(self, client: ExecutionClient) -> None:
        self.client = client
        self.items: list[dict[str, Any]] = []
        self.backups: list[str] = []

    def note(self, label: str, status: str, detail: str = "") -> None:
        entry: dict[str, Any] = {"item": label, "status": status}
        if detail:
            entry["detail"] = detail
        self.items.append(entry)

    def run(self, label: str, sql: str, *, benign: Iterable[ErrorKind] = ()) -> str:
        """Execute a statement that must succeed.

        Args:
            label: Short human-readable step name, e.g. "CREATE quotes".
            sql: Statement to execute.
            benign: Error kinds that count as success for this step.

        Returns:
            Response body ("" when a benign error was absorbed).

        Raises:
            SchemaOperationError: If the statement fails with a non-benign error.

        Logs:
            - INFO: "{label} ... OK" or "{label} ... OK ({kind})".
            - ERROR: "{label} ... ERROR: {message}" before raising.
        """
        try:
            body = self.client.execute(sql)
        except QueryError as exc:
            if exc.kind in set(benign):
                logger.info("%s ... OK (%s)", label, exc.kind.value)
                self.note(label, "ok", exc.kind.value)
                return ""
            logger.error("%s ... ERROR: %s", label, exc.message)
            self.note(label, "failed", exc.message)
            raise SchemaOperationError(label, exc) from exc
        logger.info("%s ... OK", label)
        self.note(label, "ok")
        return body

    def try_run(self, sql: str) -> bool:
        """Execute an ignorable statement; return whether it succeeded."""
        try:
            self.client.execute(sql)
        except QueryError as exc:
            logger.debug("ignored: %s (%s)", sql, exc.kind.value)
            return False
        return True


def make_visible(runner: StepRunner, name: str) -> bool:
    """Best-effort ATTACH.

    A no-op for objects that are already attached or do not exist. The
    return value reports whether the attach actually took effect, which is
    the only way to learn that the object had been detached.
    """
    return runner.try_run(f"ATTACH TABLE {name}")


def ensure_absent(runner: StepRunner, obj: PipelineObject) -> None:
    """Converge `obj` to absent from any starting state.

    ATTACH first so that a detached object becomes visible to the guarded
    DROP; an already-absent object is success.

    Raises:
        SchemaOperationError: If the DROP fails for any reason other than
            the object not existing.
    """
    make_visible(runner, obj.name)
    runner.run(f"DROP {obj.name}", obj.drop_sql(), benign=(ErrorKind.NOT_FOUND,))


def detach(runner: StepRunner, name: str) -> None:
    """DETACH `name` if it is attached; detached or absent is success."""
    runner.run(
        f"DETACH {name}",
        f"DETACH TABLE IF EXISTS {name}",
        benign=(ErrorKind.NOT_FOUND,),
    )


def new_backup_suffix(now: datetime | None = None) -> str:
    """Suffix for backup copies, e.g. ``_bak_20260216_143052`` (UTC)."""
    moment = now or datetime.now(timezone.utc)
    return f"_bak_{moment.strftime('%Y%m%d_%H%M%S')}"


def backup_table(runner: StepRunner, name: str, suffix: str) -> str | None:
    """Swap the contents of table `name` into a fresh backup copy.

    The table is made visible, checked with EXISTS, cloned empty with
    CREATE TABLE ... AS, and then exchanged with the clone: the data ends
    up under ``name + suffix`` and `name` is left empty for the drop that
    follows.

    Returns:
        The backup table name, or None if `name` does not exist.

    Raises:
        SchemaOperationError: If the EXISTS check, clone or exchange fails.
    """
    make_visible(runner, name)
    exists = runner.run(f"EXISTS {name}", f"EXISTS TABLE {name}")
    if exists.strip() != "1":
        logger.info("%s does not exist, skip backup", name)
        runner.note(f"BACKUP {name}", "skipped", "does not exist")
        return None
    backup = f"{name}{suffix}"
    runner.run(f"CREATE {backup}", f"CREATE TABLE {backup} AS {name}")
    runner.run(f"EXCHANGE {name}", f"EXCHANGE TABLES {name} AND {backup}")
    logger.info("Backup: %s -> %s", name, backup)
    runner.backups.append(backup)
    return backup
