"""
quotech core package.

Manages the ClickHouse objects behind the quotes ingestion pipeline:
- Kafka engine tables that bind to the realtime and history topics
- The `quotes` tick table and the `ohlc` rollup table
- The materialized views that move rows between them

Layout:
- `quotech.clickhouse`: execution client, error classification, retry policy.
- `quotech.pipeline`: object catalog and the init/recreate/clean/drop engine.
- `quotech.cli`: the Typer-based `quote-ch` command.

Configuration:
- Shared anchors and defaults live in `quotech.global_config`.
- Connection and adapter settings are dataclasses in `quotech.config`.
"""
