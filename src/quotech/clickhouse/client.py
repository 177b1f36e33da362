"""ClickHouse execution client.

This module provides a small, synchronous API for sending one statement at
a time to the ClickHouse HTTP interface. Every pipeline operation is
expressed as a sequence of `execute` calls; nothing here knows about the
pipeline objects themselves.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests
import urllib3

from ..config import ConnectionSettings
from .errors import ConnectivityError, ErrorKind, QueryError

logger = logging.getLogger(__name__)


class ExecutionClient(Protocol):
    """Request/response channel to the backing store."""

    def execute(self, sql: str) -> str:
        """Run one statement and return the response body.

        Raises:
            QueryError: If the store rejects the statement or cannot be reached.
        """
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


class HTTPClient:
    """ExecutionClient backed by the ClickHouse HTTP interface."""

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.verify = settings.verify_tls
        if not settings.verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _params(self) -> dict[str, str]:
        return {
            "user": self.settings.user,
            "password": self.settings.password,
            "database": self.settings.database,
        }

    def execute(self, sql: str) -> str:
        """POST a statement and return the trimmed response body.

        Args:
            sql: Statement text, sent verbatim as the request body.

        Returns:
            Response body with surrounding whitespace removed.

        Raises:
            QueryError: On a non-200 response (message is the body) or a
                transport failure (kind OTHER).

        Logs:
            - DEBUG: first line of each statement.
        """
        logger.debug("execute: %s", sql.strip().splitlines()[0] if sql.strip() else "")
        try:
            resp = self.session.post(
                self.settings.base_url + "/",
                params=self._params(),
                data=sql.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.settings.timeout_s,
            )
        except requests.RequestException as exc:
            raise QueryError(f"ClickHouse request failed: {exc}", ErrorKind.OTHER) from exc

        body = resp.text.strip()
        if resp.status_code != 200:
            raise QueryError(f"ClickHouse error: {body}")
        return body

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def probe(client: ExecutionClient) -> None:
    """Check that the store answers before any pipeline step runs.

    Raises:
        ConnectivityError: If `SELECT 1` fails.
    """
    try:
        client.execute("SELECT 1")
    except QueryError as exc:
        raise ConnectivityError(f"cannot connect to ClickHouse: {exc.message}") from exc
    logger.debug("Connectivity probe OK")
