"""Global, project-wide configuration constants.

This module intentionally contains **no business logic** – only simple,
shared anchors and cross-cutting defaults that many modules can import.

Settings objects built from these defaults live in `quotech.config`.
"""

from pathlib import Path

# Core roots
PACKAGE_ROOT: Path = Path(__file__).resolve().parent

# Core Names
PROJECT_NAME = "quotech"
PACKAGE_NAME = "quotech"
CLI_NAME = "quote-ch"

# ClickHouse connection defaults
DEFAULT_CH_HOST = "127.0.0.1"
DEFAULT_CH_PORT = 8443
DEFAULT_CH_DATABASE = "default"
DEFAULT_CH_TIMEOUT_S = 120.0

# Kafka broker as seen from ClickHouse (used inside Kafka engine SETTINGS)
DEFAULT_KAFKA_BROKER = "kafka:9092"
DEFAULT_KAFKA_SECURITY_PROTOCOL = "SASL_PLAINTEXT"
DEFAULT_KAFKA_SASL_MECHANISM = "PLAIN"
DEFAULT_KAFKA_SKIP_BROKEN_MESSAGES = 10

# Topics
DEFAULT_TOPIC_RT = "quotes"
DEFAULT_TOPIC_HISTORY = "quotes_history"

# Consumer groups used by the Kafka engine tables
GROUP_RT = "clickhouse_quotes"
GROUP_HISTORY = "clickhouse_quotes_history"
GROUP_HISTORY_PRODUCER = "clickhouse_quotes_history-producer"

# Environment variables
ENV_CH_HOST = "CH_HOST"
ENV_CH_PORT = "CH_PORT"
ENV_CH_USER = "CH_USER"
ENV_CH_PASSWORD = "CH_PASSWORD"
ENV_CH_DATABASE = "CH_DATABASE"
ENV_CH_TLS = "CH_TLS"
ENV_KAFKA_BROKER = "KAFKA_BROKER"
ENV_KAFKA_USER = "KAFKA_USER"
ENV_KAFKA_PASSWORD = "KAFKA_PASSWORD"
ENV_KAFKA_SECURITY_PROTOCOL = "CH_KAFKA_SECURITY_PROTOCOL"
ENV_TOPIC_RT = "TOPIC_RT"
ENV_TOPIC_HISTORY = "TOPIC_HISTORY"
ENV_LOG_DIR = "QUOTECH_LOG_DIR"
