"""Tests for the HTTP execution client, error classification and probe."""

from __future__ import annotations

from typing import Any

import pytest
import requests

from _fake_clickhouse import FakeClickHouse
from quotech.clickhouse import (
    ConnectivityError,
    ErrorKind,
    HTTPClient,
    QueryError,
    classify_error,
    probe,
)
from quotech.config import ConnectionSettings


class _StubResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


class _StubSession:
    def __init__(self, response: _StubResponse | None = None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.verify = True
        self.closed = False
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def post(self, url: str, **kwargs: Any) -> _StubResponse:
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        assert self.response is not None
        return self.response

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> ConnectionSettings:
    return ConnectionSettings(user="admin", password="secret", host="ch.local", port=8443)


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("message", "kind"),
        [
            ("Table default.mv_quotes_to_ohlc is still used by some query", ErrorKind.BUSY),
            ("Code: 60. Table default.quotes doesn't exist. (UNKNOWN_TABLE)", ErrorKind.NOT_FOUND),
            ("Database foo does not exist", ErrorKind.NOT_FOUND),
            ("Code: 57. Table default.ohlc already exists. (TABLE_ALREADY_EXISTS)", ErrorKind.ALREADY_EXISTS),
            ("Code: 62. Syntax error", ErrorKind.OTHER),
        ],
    )
    def test_classify(self, message: str, kind: ErrorKind) -> None:
        assert classify_error(message) is kind

    @pytest.mark.unit
    def test_busy_wins_over_other_signatures(self) -> None:
        message = "Table default.x doesn't exist yet but is still used by some query"
        assert classify_error(message) is ErrorKind.BUSY

    @pytest.mark.unit
    def test_query_error_classifies_itself(self) -> None:
        exc = QueryError("Table default.x already exists")
        assert exc.kind is ErrorKind.ALREADY_EXISTS
        assert not exc.is_busy


class TestHTTPClient:
    """Tests for HTTPClient.execute."""

    @pytest.mark.unit
    def test_posts_statement_with_credentials(self, settings: ConnectionSettings) -> None:
        session = _StubSession(_StubResponse(200, "1\n"))
        client = HTTPClient(settings, session=session)  # type: ignore[arg-type]

        assert client.execute("SELECT 1") == "1"

        url, kwargs = session.calls[0]
        assert url == "https://ch.local:8443/"
        assert kwargs["params"] == {"user": "admin", "password": "secret", "database": "default"}
        assert kwargs["data"] == b"SELECT 1"
        assert kwargs["timeout"] == 120.0
        assert session.verify is False

    @pytest.mark.unit
    def test_plain_http_when_tls_disabled(self) -> None:
        settings = ConnectionSettings(user="u", password="p", port=8123, tls=False)
        session = _StubSession(_StubResponse(200, ""))
        HTTPClient(settings, session=session).execute("SELECT 1")  # type: ignore[arg-type]
        assert session.calls[0][0] == "http://127.0.0.1:8123/"

    @pytest.mark.unit
    def test_non_200_raises_classified_error(self, settings: ConnectionSettings) -> None:
        body = "Code: 473. Table default.kafka_quotes is still used by some query"
        client = HTTPClient(settings, session=_StubSession(_StubResponse(500, body)))  # type: ignore[arg-type]

        with pytest.raises(QueryError) as excinfo:
            client.execute("ATTACH TABLE kafka_quotes")
        assert excinfo.value.is_busy
        assert body in str(excinfo.value)

    @pytest.mark.unit
    def test_transport_error_is_query_error(self, settings: ConnectionSettings) -> None:
        session = _StubSession(exc=requests.ConnectionError("connection refused"))
        client = HTTPClient(settings, session=session)  # type: ignore[arg-type]

        with pytest.raises(QueryError) as excinfo:
            client.execute("SELECT 1")
        assert excinfo.value.kind is ErrorKind.OTHER

    @pytest.mark.unit
    def test_redacted_settings_hide_password(self, settings: ConnectionSettings) -> None:
        assert settings.redacted().password == "***"
        assert settings.password == "secret"

    @pytest.mark.unit
    def test_context_manager_closes_session(self, settings: ConnectionSettings) -> None:
        session = _StubSession(_StubResponse(200, "1"))

        with HTTPClient(settings, session=session) as client:  # type: ignore[arg-type]
            client.execute("SELECT 1")
            assert session.closed is False

        assert session.closed is True


class TestProbe:
    """Tests for the connectivity probe."""

    @pytest.mark.unit
    def test_probe_failure_is_connectivity_error(self, fake_ch: FakeClickHouse) -> None:
        fake_ch.fail("SELECT 1", "Authentication failed: password is incorrect")
        with pytest.raises(ConnectivityError, match="cannot connect"):
            probe(fake_ch)
