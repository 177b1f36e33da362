"""Pipeline object lifecycle: init, recreate, clean, drop.

Every operation is a fixed, dependency-ordered sequence of statements sent
one at a time through an `ExecutionClient`. Operations never branch on a
read of object state; they apply idempotent steps that converge from any
starting state, so a command that failed half-way can simply be rerun.

The store has no multi-object transaction. Where a mutation could race with
continuous background work, the view involved is detached before the
mutation and reattached after it. Reattachment policy differs on purpose:

- Recreate assumes an offline maintenance window. A view it could not
  reattach is reported as a warning with the manual recovery statement.
- Clean assumes a live pipeline. Failing to reattach the rollup view is
  fatal (`ReattachError`), because silently losing aggregation is worse
  than a partially applied delete.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from ..clickhouse.client import ExecutionClient
from ..clickhouse.errors import (
    AttachTimeoutError,
    ErrorKind,
    QueryError,
    ReattachError,
    SchemaOperationError,
    ValidationError,
)
from ..clickhouse.retry import DEFAULT_RETRY_POLICY, RetryPolicy, attach_with_retry
from ..config import KafkaSettings
from .catalog import DEFAULT_CATALOG, Catalog, ObjectKind, PipelineObject, Scope
from .primitives import (
    StepRunner,
    backup_table,
    detach,
    ensure_absent,
    make_visible,
    new_backup_suffix,
)
from .ranges import CleanFilter, CleanTarget

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    CREATE = "create"
    DROP = "drop"


class StateTransitionEngine:
    """Orchestrates the pipeline's ClickHouse objects.

    Args:
        client: Execution client for the target database.
        kafka: Settings rendered into the Kafka engine tables.
        catalog: Objects to manage and their dependency order.
        retry: Backoff policy for attaches that race with background work.
    """

    def __init__(
        self,
        client: ExecutionClient,
        *,
        kafka: KafkaSettings | None = None,
        catalog: Catalog = DEFAULT_CATALOG,
        retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self.client = client
        self.kafka = kafka or KafkaSettings()
        self.catalog = catalog
        self.retry = retry

    # ------------------------------------------------------------------
    # generic executor
    # ------------------------------------------------------------------

    def apply(
        self,
        runner: StepRunner,
        scope: Scope,
        direction: Direction,
        *,
        if_not_exists: bool = False,
        backup_suffix: str | None = None,
    ) -> list[PipelineObject]:
        """Create or drop every in-scope object in dependency order.

        CREATE walks the catalog forwards. With `if_not_exists`, every object
        is made visible first: a detached object is invisible to
        CREATE ... IF NOT EXISTS, which would then report success while
        leaving it detached. DROP walks the catalog backwards through
        `ensure_absent`; with `backup_suffix`, storage tables are swapped
        out to a backup copy just before their drop.

        Returns:
            The objects touched, in the order they were processed.
        """
        if direction is Direction.DROP:
            objects = self.catalog.reverse(scope)
            for obj in objects:
                if backup_suffix and obj.kind.is_storage:
                    backup_table(runner, obj.name, backup_suffix)
                ensure_absent(runner, obj)
            return objects

        objects = self.catalog.forward(scope)
        benign = (ErrorKind.ALREADY_EXISTS,) if if_not_exists else ()
        for obj in objects:
            if if_not_exists:
                make_visible(runner, obj.name)
            runner.run(
                f"CREATE {obj.name}",
                obj.create_sql(self.kafka, if_not_exists=if_not_exists),
                benign=benign,
            )
        return objects

    def _detach_consumers(self, runner: StepRunner) -> None:
        for obj in self.catalog.consumers():
            detach(runner, obj.name)

    def _result(self, runner: StepRunner, message: str, **extra: Any) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": True,
            "message": message,
            "items": runner.items,
        }
        result.update(extra)
        return result

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------

    def init(self) -> dict[str, Any]:
        """Create every missing object, then leave consumers detached.

        Safe to run repeatedly. Producer-only Kafka tables stay attached
        because nothing consumes through them.

        Raises:
            SchemaOperationError: On the first non-idempotent failure.
        """
        logger.info("init: CREATE IF NOT EXISTS (idempotent)")
        runner = StepRunner(self.client)
        self.apply(runner, Scope.ALL, Direction.CREATE, if_not_exists=True)
        self._detach_consumers(runner)
        consumers = ", ".join(obj.name for obj in self.catalog.consumers())
        return self._result(
            runner,
            f"Done. Pipeline initialized (Kafka consumers detached). To enable: {consumers}",
        )

    # ------------------------------------------------------------------
    # recreate
    # ------------------------------------------------------------------

    def _guarded_views(self, scope: Scope) -> list[PipelineObject]:
        """Out-of-scope views that write into storage this scope replaces."""
        if not (scope.includes_storage and not scope.includes_adapters):
            return []
        in_scope = self.catalog.forward(scope)
        storage = {obj.name for obj in in_scope if obj.kind.is_storage}
        return self.catalog.views_into(storage, exclude={obj.name for obj in in_scope})

    def _unbound_sources(self, scope: Scope) -> list[PipelineObject]:
        """Out-of-scope Kafka tables that in-scope views read from."""
        sources: list[PipelineObject] = []
        for view in self.catalog.forward(scope):
            if not view.is_view:
                continue
            source = self.catalog.source_of(view)
            if (
                source is not None
                and source.kind is ObjectKind.ADAPTER_TABLE
                and not self.catalog.in_scope(source, scope)
                and source not in sources
            ):
                sources.append(source)
        return sources

    def _reattach_guarded(
        self, runner: StepRunner, views: list[PipelineObject]
    ) -> list[dict[str, str]]:
        warnings: list[dict[str, str]] = []
        for view in views:
            try:
                attempts = attach_with_retry(self.client, view.name, self.retry)
            except (QueryError, AttachTimeoutError) as exc:
                reason = f"not re-attached ({exc}). Run manually: ATTACH TABLE {view.name}"
                logger.warning("%s %s", view.name, reason)
                runner.note(f"ATTACH {view.name}", "warning", reason)
                warnings.append({"item": view.name, "reason": reason})
                continue
            logger.info("ATTACH %s ... OK", view.name)
            runner.note(f"ATTACH {view.name}", "ok", f"attempts={attempts}")
        return warnings

    def recreate(self, scope: Scope = Scope.ALL, *, backup: bool = False) -> dict[str, Any]:
        """Drop and recreate the in-scope objects.

        Phases:
          1. Pre-guard: detach out-of-scope views that write into storage
             being replaced.
          2. Drop in reverse dependency order. With `backup`, each existing
             storage table is first exchanged with an empty
             ``<table>_bak_<UTC timestamp>`` copy, so its rows survive.
          3. Create in forward dependency order. Kafka tables feeding
             in-scope views are made visible for the duration of the create
             and re-detached afterwards if they had been detached.
          4. Reattach the pre-guarded views (warning on failure), and detach
             consumers whenever Kafka tables were recreated.

        Raises:
            ValidationError: If `backup` is set for a scope without storage.
            SchemaOperationError: If a drop, create, backup or guard detach fails.
        """
        if backup and not scope.includes_storage:
            raise ValidationError("--backup only applies when storage tables are recreated")
        logger.info("recreate: scope %s", scope.description)
        runner = StepRunner(self.client)
        guarded = self._guarded_views(scope)
        suffix = new_backup_suffix() if backup else None

        try:
            for view in guarded:
                detach(runner, view.name)
            self.apply(runner, scope, Direction.DROP, backup_suffix=suffix)

            revealed = [
                source for source in self._unbound_sources(scope)
                if make_visible(runner, source.name)
            ]
            try:
                self.apply(runner, scope, Direction.CREATE)
            finally:
                for source in revealed:
                    detach(runner, source.name)
        finally:
            warnings = self._reattach_guarded(runner, guarded)

        if scope.includes_adapters:
            self._detach_consumers(runner)

        message = "Done. Objects recreated."
        if runner.backups:
            message += f" Backups: {', '.join(runner.backups)}."
        if scope.includes_adapters:
            consumers = ", ".join(obj.name for obj in self.catalog.consumers())
            message += f" Kafka consumers are detached. To enable: {consumers}"
        return self._result(
            runner, message, scope=scope.value, warnings=warnings, backups=runner.backups
        )

    # ------------------------------------------------------------------
    # clean
    # ------------------------------------------------------------------

    def _count(self, runner: StepRunner, table: PipelineObject, sql: str) -> int:
        body = runner.run(f"COUNT {table.name}", sql)
        try:
            return int(body.split()[0]) if body else 0
        except ValueError as exc:
            raise SchemaOperationError(
                f"COUNT {table.name}", QueryError(f"unexpected count result: {body!r}")
            ) from exc

    def _reattach_rollup(self, runner: StepRunner) -> None:
        view = self.catalog.rollup_view
        try:
            attempts = attach_with_retry(self.client, view.name, self.retry)
        except (QueryError, AttachTimeoutError) as exc:
            logger.error("%s not re-attached! Run manually: ATTACH TABLE %s", view.name, view.name)
            runner.note(f"ATTACH {view.name}", "failed", str(exc))
            raise ReattachError(view.name, exc) from exc
        logger.info("ATTACH %s ... OK", view.name)
        runner.note(f"ATTACH {view.name}", "ok", f"attempts={attempts}")

    def clean(
        self,
        flt: CleanFilter,
        target: CleanTarget = CleanTarget.BOTH,
        *,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Delete a time range from the raw and/or rollup table.

        Row counts are taken first; a dry run stops there. Otherwise the
        rollup view is detached before any delete when the rollup table is
        targeted, so deletes cannot race with its aggregation, and is
        reattached on every exit path afterwards. Tables with a zero count
        are not sent a DELETE.

        Raises:
            SchemaOperationError: If a count, detach or delete fails.
            ReattachError: If the rollup view could not be reattached.
        """
        raw = self.catalog.raw_table
        rollup = self.catalog.rollup_table
        runner = StepRunner(self.client)
        counts: dict[str, int] = {}

        if target.raw:
            counts[raw.name] = self._count(
                runner, raw, f"SELECT count() FROM {raw.name} FINAL WHERE {flt.raw_where()}"
            )
        if target.rollup:
            counts[rollup.name] = self._count(
                runner, rollup, f"SELECT count() FROM {rollup.name} WHERE {flt.rollup_where()}"
            )
        for name, count in counts.items():
            logger.info("%s rows to delete: %d", name, count)

        extra = {"counts": counts, "dry_run": dry_run, "range": str(flt.time_range)}
        if dry_run:
            return self._result(runner, "[dry-run] No changes made.", **extra)

        detached = False
        if target.rollup:
            detach(runner, self.catalog.rollup_view.name)
            detached = True
        try:
            if target.raw:
                self._delete(runner, raw, flt.raw_where(), counts[raw.name])
            if target.rollup:
                self._delete(runner, rollup, flt.rollup_where(), counts[rollup.name])
        finally:
            if detached:
                self._reattach_rollup(runner)

        return self._result(runner, "Done. Range deleted.", **extra)

    def _delete(self, runner: StepRunner, table: PipelineObject, where: str, count: int) -> None:
        if count <= 0:
            logger.info("%s - nothing to delete", table.name)
            runner.note(f"DELETE {table.name}", "skipped", "nothing to delete")
            return
        runner.run(f"DELETE {table.name}", f"DELETE FROM {table.name} WHERE {where}")

    # ------------------------------------------------------------------
    # drop
    # ------------------------------------------------------------------

    def drop(self) -> dict[str, Any]:
        """Remove every pipeline object; already-absent objects are success."""
        runner = StepRunner(self.client)
        self.apply(runner, Scope.ALL, Direction.DROP)
        return self._result(runner, "Done. All objects dropped.")

    # ------------------------------------------------------------------
    # consumers and status
    # ------------------------------------------------------------------

    def _select_consumers(self, names: list[str] | None) -> list[PipelineObject]:
        if not names:
            return self.catalog.consumers()
        selected = [self.catalog.get(name) for name in names]
        for obj in selected:
            if not obj.consumer:
                raise ValidationError(f"{obj.name} is not a Kafka consumer table")
        return selected

    def enable(self, names: list[str] | None = None) -> dict[str, Any]:
        """Attach consumer tables so ClickHouse starts reading the topics.

        Raises:
            SchemaOperationError: If an attach fails with a non-busy error.
            AttachTimeoutError: If a table stays busy for the whole budget.
        """
        runner = StepRunner(self.client)
        for obj in self._select_consumers(names):
            try:
                attempts = attach_with_retry(self.client, obj.name, self.retry)
            except QueryError as exc:
                runner.note(f"ATTACH {obj.name}", "failed", exc.message)
                raise SchemaOperationError(f"ATTACH {obj.name}", exc) from exc
            logger.info("ATTACH %s ... OK", obj.name)
            runner.note(f"ATTACH {obj.name}", "ok", f"attempts={attempts}")
        return self._result(runner, "Kafka consumers enabled.")

    def disable(self, names: list[str] | None = None) -> dict[str, Any]:
        """Detach consumer tables; already detached is success."""
        runner = StepRunner(self.client)
        for obj in self._select_consumers(names):
            detach(runner, obj.name)
        return self._result(runner, "Kafka consumers disabled.")

    def status(self) -> dict[str, Any]:
        """Report which catalog objects are attached, plus consumer and data detail.

        Detached and absent objects both disappear from `system.tables`, so
        they are reported together. Consumer activity comes from
        `system.kafka_consumers`; the data summary lists ticks per symbol
        and candles per timeframe for whichever storage tables are attached.
        These extra reads are informational: a failure is logged as a
        warning, never raised.

        Raises:
            SchemaOperationError: If `system.tables` cannot be read.
        """
        runner = StepRunner(self.client)
        names = ", ".join(f"'{name}'" for name in self.catalog.names)
        body = runner.run(
            "READ system.tables",
            "SELECT name, engine, total_rows FROM system.tables "
            f"WHERE database = currentDatabase() AND name IN ({names}) "
            "ORDER BY name FORMAT TabSeparated",
        )
        present: dict[str, tuple[str, str]] = {}
        for line in body.splitlines():
            parts = line.split("\t")
            if len(parts) >= 3:
                present[parts[0]] = (parts[1], parts[2])

        objects: dict[str, str] = {}
        runner.items = []
        for obj in self.catalog:
            if obj.name in present:
                engine, rows = present[obj.name]
                detail = f"engine={engine}"
                if obj.kind.is_storage and rows not in ("", "\\N"):
                    detail += f" rows={rows}"
                objects[obj.name] = "attached"
                runner.note(obj.name, "attached", detail)
            else:
                objects[obj.name] = "detached/absent"
                runner.note(obj.name, "detached/absent")
        attached = sum(1 for state in objects.values() if state == "attached")

        raw = self.catalog.raw_table.name
        rollup = self.catalog.rollup_table.name
        ticks: list[dict[str, str]] = []
        candles: list[dict[str, str]] = []
        if raw in present:
            ticks = self._read_rows(
                f"SELECT symbol, count() AS ticks, min(ts), max(ts) FROM {raw} FINAL "
                "GROUP BY symbol ORDER BY symbol FORMAT TabSeparated",
                ("symbol", "ticks", "first", "last"),
            )
        if rollup in present:
            candles = self._read_rows(
                f"SELECT tf, count() AS candles FROM {rollup} "
                "GROUP BY tf ORDER BY tf FORMAT TabSeparated",
                ("tf", "candles"),
            )
        return self._result(
            runner,
            f"{attached}/{len(self.catalog)} pipeline objects attached.",
            objects=objects,
            consumers=self._read_rows(
                "SELECT table, is_currently_used, num_messages_read, last_poll_time, "
                "length(exceptions.text) FROM system.kafka_consumers "
                "WHERE database = currentDatabase() ORDER BY table FORMAT TabSeparated",
                ("table", "in_use", "messages_read", "last_poll", "exceptions"),
            ),
            ticks=ticks,
            candles=candles,
        )

    def _read_rows(self, sql: str, columns: tuple[str, ...]) -> list[dict[str, str]]:
        """Run an informational TabSeparated query; failures yield no rows."""
        try:
            body = self.client.execute(sql)
        except QueryError as exc:
            logger.warning("status query failed (%s): %s", exc.kind.value, exc.message)
            return []
        rows = []
        for line in body.splitlines():
            parts = line.split("\t")
            if len(parts) == len(columns):
                rows.append(dict(zip(columns, parts)))
        return rows
