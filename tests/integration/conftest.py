"""Integration test fixtures: real SQLite files and HTTP client, no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from stockbook.core.config import ProviderConfig, StockbookConfig, StorageConfig

YAHOO = "https://yahoo.test"


@pytest.fixture
def integration_config(tmp_path: Path) -> StockbookConfig:
    return StockbookConfig(
        provider=ProviderConfig(base_url=YAHOO, rate_limit=100, timeout=5),
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
    )
