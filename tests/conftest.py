from __future__ import annotations

from pathlib import Path

import pytest

from _fake_clickhouse import FakeClickHouse
from quotech.clickhouse.retry import RetryPolicy
from quotech.config import KafkaSettings
from quotech.pipeline import StateTransitionEngine


@pytest.fixture(autouse=True)
def app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Forces test mode and clears connection variables from the environment,
    so option defaults in CLI tests are not overridden by the developer's shell.
    """
    monkeypatch.setenv("APP_ENV", "test")
    for var in (
        "CH_HOST",
        "CH_PORT",
        "CH_USER",
        "CH_PASSWORD",
        "CH_DATABASE",
        "CH_TLS",
        "KAFKA_BROKER",
        "KAFKA_USER",
        "KAFKA_PASSWORD",
        "CH_KAFKA_SECURITY_PROTOCOL",
        "TOPIC_RT",
        "TOPIC_HISTORY",
        "QUOTECH_LOG_DIR",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """
    A dedicated temp root directory for each test.
    All filesystem writes in tests should be under this root (or tmp_path directly).
    """
    root = tmp_path / "proj"
    root.mkdir(parents=True)
    return root


@pytest.fixture(autouse=True)
def chdir_to_project_root(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Automatically change working directory to project_root for all tests.
    This ensures relative-path operations go into the temp directory by default.
    """
    monkeypatch.chdir(project_root)


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by the retry policy, instead of real sleeping."""
    return []


@pytest.fixture
def retry_policy(sleeps: list[float]) -> RetryPolicy:
    return RetryPolicy(sleep=sleeps.append)


@pytest.fixture
def kafka_settings() -> KafkaSettings:
    return KafkaSettings(user="kafka-user", password="kafka-pass", broker="kafka:9092")


@pytest.fixture
def fake_ch() -> FakeClickHouse:
    """An empty database."""
    return FakeClickHouse()


@pytest.fixture
def engine(
    fake_ch: FakeClickHouse, kafka_settings: KafkaSettings, retry_policy: RetryPolicy
) -> StateTransitionEngine:
    return StateTransitionEngine(fake_ch, kafka=kafka_settings, retry=retry_policy)


@pytest.fixture
def initialized_ch(fake_ch: FakeClickHouse, engine: StateTransitionEngine) -> FakeClickHouse:
    """A database after a successful init, with call history cleared."""
    engine.init()
    fake_ch.calls.clear()
    return fake_ch
