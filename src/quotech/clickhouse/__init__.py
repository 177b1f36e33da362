"""Public interface for the clickhouse package.

Exposes the execution client, the error taxonomy with its single
classification function, and the attach retry policy.
"""

from .client import ExecutionClient, HTTPClient, probe
from .errors import (
    AttachTimeoutError,
    ConnectivityError,
    ErrorKind,
    PipelineError,
    QueryError,
    ReattachError,
    SchemaOperationError,
    ValidationError,
    classify_error,
)
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, attach_with_retry

__all__ = [
    "ExecutionClient",
    "HTTPClient",
    "probe",
    "ErrorKind",
    "classify_error",
    "PipelineError",
    "ValidationError",
    "ConnectivityError",
    "QueryError",
    "SchemaOperationError",
    "AttachTimeoutError",
    "ReattachError",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "attach_with_retry",
]
