"""Pipeline orchestration layer.

- `pipeline/catalog.py` - the objects, their DDL and dependency order
- `pipeline/primitives.py` - idempotent statement sequences (ensure_absent, detach)
- `pipeline/ranges.py` - time ranges and row filters for range deletion
- `pipeline/engine.py` - init / recreate / clean / drop and consumer toggles

Import policy:
- CLI imports only from `pipeline.*` and `clickhouse.*`.
- `pipeline.*` may call `clickhouse.*`.
- `clickhouse.*` must not call `pipeline.*`.
"""

from .catalog import DEFAULT_CATALOG, Catalog, ObjectKind, PipelineObject, Scope
from .engine import Direction, StateTransitionEngine
from .ranges import CleanFilter, CleanTarget, TimeRange

__all__ = [
    "DEFAULT_CATALOG",
    "Catalog",
    "ObjectKind",
    "PipelineObject",
    "Scope",
    "Direction",
    "StateTransitionEngine",
    "CleanFilter",
    "CleanTarget",
    "TimeRange",
]
