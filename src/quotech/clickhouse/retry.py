"""Bounded retry for attach operations that race with background work.

Attaching an object right after one of its dependencies was dropped or
rewritten can fail while a merge or an in-flight query still holds a
reference. Those failures clear on their own, so they are retried with a
linear backoff; every other failure is final.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .client import ExecutionClient
from .errors import AttachTimeoutError, ErrorKind, QueryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: wait ``attempt * backoff_step_s`` before each retry.

    The defaults give an immediate first attempt and up to 45 seconds of
    cumulative waiting over ten attempts.
    """

    attempts: int = 10
    backoff_step_s: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before attempt number `attempt` (0-based)."""
        return attempt * self.backoff_step_s


DEFAULT_RETRY_POLICY = RetryPolicy()


def attach_with_retry(
    client: ExecutionClient,
    name: str,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> int:
    """Attach `name`, retrying while the store reports it as busy.

    An "already exists" answer means the object is already attached and
    counts as success.

    Args:
        client: Execution client.
        name: Object to attach.
        policy: Attempt budget and backoff.

    Returns:
        Number of attempts used.

    Raises:
        QueryError: On the first non-busy failure.
        AttachTimeoutError: If every attempt failed as busy.

    Logs:
        - INFO: each busy retry.
    """
    for attempt in range(policy.attempts):
        if attempt > 0:
            policy.sleep(policy.delay_for(attempt))
        try:
            client.execute(f"ATTACH TABLE {name}")
        except QueryError as exc:
            if exc.kind is ErrorKind.ALREADY_EXISTS:
                logger.debug("%s already attached", name)
                return attempt + 1
            if not exc.is_busy:
                raise
            logger.info("ATTACH %s busy, retry %d/%d", name, attempt + 1, policy.attempts)
            continue
        return attempt + 1
    raise AttachTimeoutError(name, policy.attempts)
