"""In-memory stand-in for the ClickHouse HTTP interface.

Models just enough of ClickHouse for the pipeline statements:

- objects are attached, detached or absent
- a detached object is invisible to IF EXISTS / IF NOT EXISTS guards but
  still blocks CREATE with its leftover metadata
- ATTACH on an attached object fails with "already exists"
- a materialized view can only be created while its source and target
  tables are attached
- counts come from `rows`, DELETE zeroes them
- CREATE TABLE ... AS clones a table empty; EXCHANGE TABLES swaps rows
- `system.kafka_consumers` lists attached Kafka tables an attached view reads

Failures can be scripted per statement prefix with `fail`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from quotech.clickhouse.errors import QueryError

ATTACHED = "attached"
DETACHED = "detached"
ABSENT = "absent"

_ATTACH = re.compile(r"^ATTACH TABLE (\w+)$")
_DETACH = re.compile(r"^DETACH TABLE (IF EXISTS )?(\w+)$")
_DROP = re.compile(r"^DROP (?:TABLE|VIEW) IF EXISTS (\w+)$")
_CREATE = re.compile(r"^CREATE (TABLE|MATERIALIZED VIEW)( IF NOT EXISTS)? (\w+)", re.S)
_COUNT = re.compile(r"^SELECT count\(\) FROM (\w+)")
_DELETE = re.compile(r"^DELETE FROM (\w+) WHERE ")
_SYSTEM_TABLES = re.compile(r"FROM system\.tables .* name IN \(([^)]*)\)", re.S)
_KAFKA_CONSUMERS = re.compile(r"FROM system\.kafka_consumers ")
_EXISTS = re.compile(r"^EXISTS TABLE (\w+)$")
_CREATE_AS = re.compile(r"^CREATE TABLE (\w+) AS (\w+)$")
_EXCHANGE = re.compile(r"^EXCHANGE TABLES (\w+) AND (\w+)$")
_TICKS = re.compile(r"^SELECT symbol, count\(\) AS ticks.* FROM (\w+) FINAL ")
_CANDLES = re.compile(r"^SELECT tf, count\(\) AS candles FROM (\w+) ")


@dataclass
class FakeObject:
    name: str
    state: str
    ddl: str = ""
    engine: str = "MergeTree"


@dataclass
class _Failure:
    prefix: str
    message: str
    remaining: int


@dataclass
class FakeClickHouse:
    objects: dict[str, FakeObject] = field(default_factory=dict)
    rows: dict[str, int] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    deletes: list[tuple[str, dict[str, str]]] = field(default_factory=list)
    ticks: dict[str, int] = field(default_factory=dict)
    candles: dict[str, int] = field(default_factory=dict)
    closed: bool = False
    _failures: list[_Failure] = field(default_factory=list)

    # -- scripting helpers -------------------------------------------------

    def seed(self, name: str, state: str = ATTACHED, *, ddl: str = "", engine: str = "MergeTree") -> None:
        self.objects[name] = FakeObject(name, state, ddl, engine)

    def fail(self, prefix: str, message: str, times: int = 1) -> None:
        """Make the next `times` statements starting with `prefix` fail."""
        self._failures.append(_Failure(prefix, message, times))

    def state(self, name: str) -> str:
        obj = self.objects.get(name)
        return obj.state if obj else ABSENT

    def states(self) -> dict[str, str]:
        return {name: obj.state for name, obj in self.objects.items()}

    def definitions(self) -> dict[str, str]:
        return {name: obj.ddl for name, obj in self.objects.items()}

    def statements(self, prefix: str) -> list[str]:
        return [sql for sql in self.calls if sql.startswith(prefix)]

    def index_of(self, statement: str) -> int:
        return self.calls.index(statement)

    # -- ExecutionClient ---------------------------------------------------

    def execute(self, sql: str) -> str:
        self.calls.append(sql)
        for failure in self._failures:
            if failure.remaining > 0 and sql.startswith(failure.prefix):
                failure.remaining -= 1
                raise QueryError(failure.message)

        if sql == "SELECT 1":
            return "1"
        if m := _ATTACH.match(sql):
            return self._attach(m.group(1))
        if m := _DETACH.match(sql):
            return self._detach(m.group(2), if_exists=bool(m.group(1)))
        if m := _DROP.match(sql):
            return self._drop(m.group(1))
        if m := _EXISTS.match(sql):
            return "1" if self.state(m.group(1)) == ATTACHED else "0"
        if m := _CREATE_AS.match(sql):
            return self._clone(m.group(1), m.group(2))
        if m := _EXCHANGE.match(sql):
            return self._exchange(m.group(1), m.group(2))
        if m := _CREATE.match(sql):
            return self._create(sql, m.group(3), view=m.group(1) != "TABLE", if_not_exists=bool(m.group(2)))
        if m := _COUNT.match(sql):
            self._require_attached(m.group(1))
            return str(self.rows.get(m.group(1), 0))
        if m := _DELETE.match(sql):
            self._require_attached(m.group(1))
            self.deletes.append((m.group(1), self.states()))
            self.rows[m.group(1)] = 0
            return ""
        if m := _SYSTEM_TABLES.search(sql):
            wanted = [name.strip().strip("'") for name in m.group(1).split(",")]
            lines = []
            for name in sorted(wanted):
                obj = self.objects.get(name)
                if obj and obj.state == ATTACHED:
                    rows = str(self.rows.get(name, 0)) if obj.engine != "MaterializedView" else "\\N"
                    lines.append(f"{name}\t{obj.engine}\t{rows}")
            return "\n".join(lines)
        if _KAFKA_CONSUMERS.search(sql):
            return "\n".join(
                f"{name}\t1\t{self.rows.get(name, 0)}\t2026-02-15 20:00:00\t0"
                for name in sorted(self._active_consumers())
            )
        if m := _TICKS.match(sql):
            self._require_attached(m.group(1))
            return "\n".join(
                f"{symbol}\t{n}\t2026-02-15 20:00:00\t2026-02-15 20:59:59"
                for symbol, n in sorted(self.ticks.items())
            )
        if m := _CANDLES.match(sql):
            self._require_attached(m.group(1))
            return "\n".join(f"{tf}\t{n}" for tf, n in sorted(self.candles.items()))
        raise QueryError(f"Syntax error: fake cannot run {sql!r}")

    def _missing(self, name: str) -> QueryError:
        return QueryError(f"Code: 60. DB::Exception: Table default.{name} doesn't exist. (UNKNOWN_TABLE)")

    def _require_attached(self, name: str) -> None:
        if self.state(name) != ATTACHED:
            raise self._missing(name)

    def _attach(self, name: str) -> str:
        state = self.state(name)
        if state == ATTACHED:
            raise QueryError(
                f"Code: 57. DB::Exception: Table default.{name} already exists. (TABLE_ALREADY_EXISTS)"
            )
        if state == ABSENT:
            raise self._missing(name)
        self.objects[name].state = ATTACHED
        return ""

    def _detach(self, name: str, *, if_exists: bool) -> str:
        if self.state(name) == ATTACHED:
            self.objects[name].state = DETACHED
        elif not if_exists:
            raise self._missing(name)
        return ""

    def _drop(self, name: str) -> str:
        # A detached object is invisible to IF EXISTS and survives.
        if self.state(name) == ATTACHED:
            del self.objects[name]
            self.rows.pop(name, None)
        return ""

    def _create(self, sql: str, name: str, *, view: bool, if_not_exists: bool) -> str:
        state = self.state(name)
        if state == DETACHED:
            raise QueryError(
                f"Code: 57. DB::Exception: Table default.{name} already exists (detached). "
                "(TABLE_ALREADY_EXISTS)"
            )
        if state == ATTACHED:
            if if_not_exists:
                return ""
            raise QueryError(
                f"Code: 57. DB::Exception: Table default.{name} already exists. (TABLE_ALREADY_EXISTS)"
            )
        if view:
            target = re.search(r" TO (\w+) AS", sql)
            sources = re.findall(r"FROM (\w+)", sql)
            for dependency in ([target.group(1)] if target else []) + sources:
                self._require_attached(dependency)
        engine = "MaterializedView" if view else ("Kafka" if "ENGINE = Kafka()" in sql else "MergeTree")
        self.objects[name] = FakeObject(name, ATTACHED, sql.replace(" IF NOT EXISTS", ""), engine)
        return ""

    def _clone(self, name: str, source: str) -> str:
        self._require_attached(source)
        if self.state(name) != ABSENT:
            raise QueryError(
                f"Code: 57. DB::Exception: Table default.{name} already exists. (TABLE_ALREADY_EXISTS)"
            )
        original = self.objects[source]
        self.objects[name] = FakeObject(name, ATTACHED, original.ddl, original.engine)
        return ""

    def _exchange(self, first: str, second: str) -> str:
        self._require_attached(first)
        self._require_attached(second)
        self.rows[first], self.rows[second] = self.rows.get(second, 0), self.rows.get(first, 0)
        return ""

    def _active_consumers(self) -> list[str]:
        views = [
            obj.ddl
            for obj in self.objects.values()
            if obj.state == ATTACHED and obj.engine == "MaterializedView"
        ]
        return [
            obj.name
            for obj in self.objects.values()
            if obj.state == ATTACHED
            and obj.engine == "Kafka"
            and any(re.search(rf"FROM {obj.name}\b", ddl) for ddl in views)
        ]

    def close(self) -> None:
        self.closed = True
