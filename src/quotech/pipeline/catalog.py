"""Static description of the pipeline's ClickHouse objects.

The catalog is pure data: every object, its DDL, and the order in which
objects must be created. Objects are listed in forward dependency order:

    storage tables  ->  Kafka engine tables  ->  materialized views

Within the views, the Kafka-facing views come before the rollup view.
Dropping walks the same list backwards.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from .. import global_config as g
from ..clickhouse.errors import ValidationError
from ..config import KafkaSettings


class ObjectKind(str, Enum):
    RAW_TABLE = "raw_table"
    ROLLUP_TABLE = "rollup_table"
    ADAPTER_TABLE = "adapter_table"
    VIEW = "view"

    @property
    def is_storage(self) -> bool:
        return self in (ObjectKind.RAW_TABLE, ObjectKind.ROLLUP_TABLE)


class Scope(str, Enum):
    """Which part of the catalog an operation touches."""

    ALL = "all"
    ADAPTER_ONLY = "adapter"
    STORAGE_ONLY = "storage"
    VIEWS_ONLY = "views"

    @classmethod
    def from_flags(
        cls,
        *,
        only_adapter: bool = False,
        only_storage: bool = False,
        only_views: bool = False,
    ) -> Scope:
        """Resolve the mutually exclusive --only-* flags.

        Raises:
            ValidationError: If more than one flag is set.
        """
        selected = [
            scope
            for scope, flag in (
                (cls.ADAPTER_ONLY, only_adapter),
                (cls.STORAGE_ONLY, only_storage),
                (cls.VIEWS_ONLY, only_views),
            )
            if flag
        ]
        if len(selected) > 1:
            raise ValidationError(
                "--only-adapter, --only-storage, --only-views are mutually exclusive"
            )
        return selected[0] if selected else cls.ALL

    @property
    def includes_adapters(self) -> bool:
        return self in (Scope.ALL, Scope.ADAPTER_ONLY)

    @property
    def includes_storage(self) -> bool:
        return self in (Scope.ALL, Scope.STORAGE_ONLY)

    @property
    def description(self) -> str:
        return {
            Scope.ALL: "ALL objects (full recreate)",
            Scope.ADAPTER_ONLY: "Kafka engine tables + Kafka MVs",
            Scope.STORAGE_ONLY: "storage tables (quotes, ohlc) + OHLC MV",
            Scope.VIEWS_ONLY: "materialized views only",
        }[self]


@dataclass(frozen=True)
class PipelineObject:
    """One ClickHouse object of the pipeline.

    `body` is everything after the object name in its CREATE statement.
    Kafka engine tables additionally get a SETTINGS clause rendered from
    `KafkaSettings`, the topic attribute named by `topic_field`, and `group`.
    """

    name: str
    kind: ObjectKind
    body: str
    produces_into: str | None = None
    reads_from: str | None = None
    consumer: bool = False
    topic_field: str | None = None
    group: str | None = None

    @property
    def is_view(self) -> bool:
        return self.kind is ObjectKind.VIEW

    @property
    def drop_keyword(self) -> str:
        return "VIEW" if self.is_view else "TABLE"

    def create_sql(self, kafka: KafkaSettings, *, if_not_exists: bool) -> str:
        """Render the CREATE statement for this object."""
        keyword = "MATERIALIZED VIEW" if self.is_view else "TABLE"
        guard = " IF NOT EXISTS" if if_not_exists else ""
        sql = f"CREATE {keyword}{guard} {self.name}{self.body}"
        if self.kind is ObjectKind.ADAPTER_TABLE:
            topic = getattr(kafka, self.topic_field or "topic_rt")
            sql += "\n" + kafka_settings_clause(kafka, topic=topic, group=self.group or "")
        return sql

    def drop_sql(self) -> str:
        return f"DROP {self.drop_keyword} IF EXISTS {self.name}"


def kafka_settings_clause(kafka: KafkaSettings, *, topic: str, group: str) -> str:
    return f"""SETTINGS
    kafka_broker_list = '{kafka.broker}',
    kafka_topic_list = '{topic}',
    kafka_group_name = '{group}',
    kafka_format = 'JSONEachRow',
    kafka_skip_broken_messages = {kafka.skip_broken_messages},
    kafka_security_protocol = '{kafka.security_protocol}',
    kafka_sasl_mechanism = '{kafka.sasl_mechanism}',
    kafka_sasl_username = '{kafka.user}',
    kafka_sasl_password = '{kafka.password}'"""


# Rollup granularities: bucket width in milliseconds and the `tf` label.
GRANULARITIES: tuple[tuple[int, str], ...] = (
    (1_000, "1s"),
    (60_000, "1m"),
    (300_000, "5m"),
    (900_000, "15m"),
    (1_800_000, "30m"),
    (3_600_000, "1h"),
    (14_400_000, "4h"),
    (86_400_000, "1d"),
    (604_800_000, "1w"),
    (31_536_000_000, "1y"),
)
GRANULARITY_LABELS: tuple[str, ...] = tuple(label for _, label in GRANULARITIES)

_INTERVALS = ", ".join(str(ms) for ms, _ in GRANULARITIES)
_LABELS = ", ".join(f"'{label}'" for label in GRANULARITY_LABELS)

RAW_TABLE = PipelineObject(
    name="quotes",
    kind=ObjectKind.RAW_TABLE,
    body="""
(
    ts     DateTime64(3),
    symbol String,
    bid    Float64,
    ask    Float64
) ENGINE = ReplacingMergeTree()
ORDER BY (symbol, ts)""",
)

ROLLUP_TABLE = PipelineObject(
    name="ohlc",
    kind=ObjectKind.ROLLUP_TABLE,
    body="""
(
    tf     LowCardinality(String),
    symbol LowCardinality(String),
    ts     DateTime64(3, 'UTC'),
    open   AggregateFunction(argMin, Float64, DateTime64(3, 'UTC')),
    high   AggregateFunction(max, Float64),
    low    AggregateFunction(min, Float64),
    close  AggregateFunction(argMax, Float64, DateTime64(3, 'UTC')),
    volume AggregateFunction(count)
) ENGINE = AggregatingMergeTree()
ORDER BY (tf, symbol, ts)""",
)

KAFKA_RT = PipelineObject(
    name="kafka_quotes",
    kind=ObjectKind.ADAPTER_TABLE,
    consumer=True,
    topic_field="topic_rt",
    group=g.GROUP_RT,
    body="""
(
    symbol String,
    bid    Float64,
    ask    Float64
) ENGINE = Kafka()""",
)

KAFKA_HISTORY = PipelineObject(
    name="kafka_quotes_history",
    kind=ObjectKind.ADAPTER_TABLE,
    consumer=True,
    topic_field="topic_history",
    group=g.GROUP_HISTORY,
    body="""
(
    symbol String,
    bid    Float64,
    ask    Float64,
    ts_ms  UInt64
) ENGINE = Kafka()""",
)

# Write-only: history reloads INSERT into it, nothing consumes through it.
KAFKA_HISTORY_PRODUCER = PipelineObject(
    name="kafka_quotes_history_producer",
    kind=ObjectKind.ADAPTER_TABLE,
    consumer=False,
    topic_field="topic_history",
    group=g.GROUP_HISTORY_PRODUCER,
    body=KAFKA_HISTORY.body,
)

MV_KAFKA_RT = PipelineObject(
    name="mv_kafka_quotes_to_quotes",
    kind=ObjectKind.VIEW,
    reads_from=KAFKA_RT.name,
    produces_into=RAW_TABLE.name,
    body=f""" TO {RAW_TABLE.name} AS
SELECT
    coalesce(_timestamp_ms, now64(3)) AS ts,
    symbol, bid, ask
FROM {KAFKA_RT.name}""",
)

MV_KAFKA_HISTORY = PipelineObject(
    name="mv_kafka_quotes_history_to_quotes",
    kind=ObjectKind.VIEW,
    reads_from=KAFKA_HISTORY.name,
    produces_into=RAW_TABLE.name,
    body=f""" TO {RAW_TABLE.name} AS
SELECT fromUnixTimestamp64Milli(ts_ms) AS ts, symbol, bid, ask
FROM {KAFKA_HISTORY.name}""",
)

MV_ROLLUP = PipelineObject(
    name="mv_quotes_to_ohlc",
    kind=ObjectKind.VIEW,
    reads_from=RAW_TABLE.name,
    produces_into=ROLLUP_TABLE.name,
    body=f""" TO {ROLLUP_TABLE.name} AS
SELECT tf, symbol, bucket AS ts, open, high, low, close, volume
FROM (
    SELECT
        tf, symbol,
        fromUnixTimestamp64Milli(
            intDiv(toUnixTimestamp64Milli(ts), interval_ms) * interval_ms
        ) AS bucket,
        argMinState(bid, ts) AS open,
        maxState(bid) AS high,
        minState(bid) AS low,
        argMaxState(bid, ts) AS close,
        countState() AS volume
    FROM {RAW_TABLE.name}
    ARRAY JOIN
        [{_INTERVALS}] AS interval_ms,
        [{_LABELS}] AS tf
    GROUP BY tf, symbol, bucket
)""",
)


class Catalog:
    """Ordered collection of pipeline objects with scope filtering."""

    def __init__(self, objects: tuple[PipelineObject, ...]) -> None:
        self.objects = objects
        self._by_name = {obj.name: obj for obj in objects}

    def __iter__(self) -> Iterator[PipelineObject]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    def get(self, name: str) -> PipelineObject:
        try:
            return self._by_name[name]
        except KeyError:
            raise ValidationError(f"unknown pipeline object: {name}") from None

    @property
    def names(self) -> list[str]:
        return [obj.name for obj in self.objects]

    @property
    def raw_table(self) -> PipelineObject:
        return self._only(ObjectKind.RAW_TABLE)

    @property
    def rollup_table(self) -> PipelineObject:
        return self._only(ObjectKind.ROLLUP_TABLE)

    @property
    def rollup_view(self) -> PipelineObject:
        """The view that aggregates the raw table into the rollup table."""
        rollup = self.rollup_table.name
        return next(obj for obj in self.views() if obj.produces_into == rollup)

    def _only(self, kind: ObjectKind) -> PipelineObject:
        return next(obj for obj in self.objects if obj.kind is kind)

    def storage(self) -> list[PipelineObject]:
        return [obj for obj in self.objects if obj.kind.is_storage]

    def adapters(self) -> list[PipelineObject]:
        return [obj for obj in self.objects if obj.kind is ObjectKind.ADAPTER_TABLE]

    def consumers(self) -> list[PipelineObject]:
        return [obj for obj in self.adapters() if obj.consumer]

    def views(self) -> list[PipelineObject]:
        return [obj for obj in self.objects if obj.is_view]

    def source_of(self, view: PipelineObject) -> PipelineObject | None:
        return self._by_name.get(view.reads_from) if view.reads_from else None

    def in_scope(self, obj: PipelineObject, scope: Scope) -> bool:
        """Whether `obj` belongs to `scope`.

        A view belongs to the side of the catalog it reads from: views fed by
        Kafka engine tables go with the adapters, the rollup view goes with
        storage.
        """
        if scope is Scope.ALL:
            return True
        if obj.is_view:
            if scope is Scope.VIEWS_ONLY:
                return True
            source = self.source_of(obj)
            source_is_adapter = source is not None and source.kind is ObjectKind.ADAPTER_TABLE
            return source_is_adapter if scope is Scope.ADAPTER_ONLY else not source_is_adapter
        if scope is Scope.ADAPTER_ONLY:
            return obj.kind is ObjectKind.ADAPTER_TABLE
        if scope is Scope.STORAGE_ONLY:
            return obj.kind.is_storage
        return False

    def forward(self, scope: Scope = Scope.ALL) -> list[PipelineObject]:
        """In-scope objects in creation order."""
        return [obj for obj in self.objects if self.in_scope(obj, scope)]

    def reverse(self, scope: Scope = Scope.ALL) -> list[PipelineObject]:
        """In-scope objects in drop order (exact reverse of creation order)."""
        return list(reversed(self.forward(scope)))

    def views_into(self, targets: set[str], *, exclude: set[str] | None = None) -> list[PipelineObject]:
        """Views that write into any of `targets`, minus names in `exclude`."""
        skip = exclude or set()
        return [
            obj for obj in self.views() if obj.produces_into in targets and obj.name not in skip
        ]


DEFAULT_CATALOG = Catalog(
    (
        RAW_TABLE,
        ROLLUP_TABLE,
        KAFKA_RT,
        KAFKA_HISTORY,
        KAFKA_HISTORY_PRODUCER,
        MV_KAFKA_RT,
        MV_KAFKA_HISTORY,
        MV_ROLLUP,
    )
)
