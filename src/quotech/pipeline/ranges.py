"""Time ranges and row filters for range deletion.

Range bounds are naive wall-clock timestamps compared directly against the
`ts` columns; they are normalised to ``YYYY-MM-DD HH:MM:SS`` before being
placed into SQL.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..clickhouse.errors import ValidationError
from .catalog import GRANULARITY_LABELS

SQL_TS_FORMAT = "%Y-%m-%d %H:%M:%S"

ACCEPTED_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


def parse_time(s: str) -> datetime:
    """Parse a range bound in any of the accepted layouts.

    Raises:
        ValidationError: If no layout matches.
    """
    value = s.strip() if isinstance(s, str) else ""
    for fmt in ACCEPTED_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValidationError(f"cannot parse {s!r} (expected: 2006-01-02 15:04:05)")


def quote_literal(value: str) -> str:
    """Render `value` as a single-quoted ClickHouse string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval ``[start, end)`` over event time."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not self.end > self.start:
            raise ValidationError("--to must be after --from")

    @classmethod
    def parse(cls, start: str | None, end: str | None) -> TimeRange:
        if not start or not end:
            raise ValidationError("--from and --to are required")
        try:
            start_dt = parse_time(start)
        except ValidationError as exc:
            raise ValidationError(f"--from: {exc}") from None
        try:
            end_dt = parse_time(end)
        except ValidationError as exc:
            raise ValidationError(f"--to: {exc}") from None
        return cls(start_dt, end_dt)

    @property
    def start_sql(self) -> str:
        return self.start.strftime(SQL_TS_FORMAT)

    @property
    def end_sql(self) -> str:
        return self.end.strftime(SQL_TS_FORMAT)

    def where(self, column: str = "ts") -> str:
        return f"{column} >= '{self.start_sql}' AND {column} < '{self.end_sql}'"

    def __str__(self) -> str:
        return f"{self.start_sql} - {self.end_sql}"


class CleanTarget(str, Enum):
    """Which tables a range deletion touches."""

    BOTH = "both"
    RAW_ONLY = "raw"
    ROLLUP_ONLY = "rollup"

    @classmethod
    def from_flags(cls, *, only_raw: bool = False, only_rollup: bool = False) -> CleanTarget:
        """Resolve the --only-raw / --only-rollup flags.

        Raises:
            ValidationError: If both flags are set.
        """
        if only_raw and only_rollup:
            raise ValidationError("--only-raw and --only-rollup are mutually exclusive")
        if only_raw:
            return cls.RAW_ONLY
        if only_rollup:
            return cls.ROLLUP_ONLY
        return cls.BOTH

    @property
    def raw(self) -> bool:
        return self is not CleanTarget.ROLLUP_ONLY

    @property
    def rollup(self) -> bool:
        return self is not CleanTarget.RAW_ONLY


@dataclass(frozen=True)
class CleanFilter:
    """Range plus optional symbol and granularity filters.

    The granularity filter only applies to the rollup table; the raw table
    has no `tf` column.
    """

    time_range: TimeRange
    symbol: str | None = None
    granularity: str | None = None

    def __post_init__(self) -> None:
        if self.granularity and self.granularity not in GRANULARITY_LABELS:
            raise ValidationError(
                f"unknown timeframe {self.granularity!r} "
                f"(expected one of: {', '.join(GRANULARITY_LABELS)})"
            )

    def raw_where(self) -> str:
        clause = self.time_range.where()
        if self.symbol:
            clause += f" AND symbol = {quote_literal(self.symbol)}"
        return clause

    def rollup_where(self) -> str:
        clause = self.raw_where()
        if self.granularity:
            clause += f" AND tf = {quote_literal(self.granularity)}"
        return clause
