"""
Pytest configuration and shared fixtures for rowsync tests.
"""

from pathlib import Path

import pytest

from fakes import FakeGateway, make_schema, make_table


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def clear_connection_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's SOURCE_DB_* / DEST_DB_* / VAULT_* settings out of tests."""
    for prefix in ("SOURCE_DB", "DEST_DB"):
        for suffix in ("DIALECT", "HOST", "PORT", "NAME", "USER", "PASSWORD", "DRIVER"):
            monkeypatch.delenv(f"{prefix}_{suffix}", raising=False)
    monkeypatch.delenv("VAULT_ADDR", raising=False)
    monkeypatch.delenv("VAULT_TOKEN", raising=False)


@pytest.fixture
def items_table():
    """Single-key table ``items(id, name, price)``."""
    return make_table("items", [("id", "integer"), ("name", "text"), ("price", "numeric")])


@pytest.fixture
def items_schema(items_table):
    return make_schema(items_table)


@pytest.fixture
def source(items_schema) -> FakeGateway:
    return FakeGateway(items_schema, role="source", label="db1.app")


@pytest.fixture
def destination(items_schema) -> FakeGateway:
    return FakeGateway(items_schema, role="destination", label="db2.app")


def items(*ids, name="x", price=1):
    """Rows for ``items`` with the given ids."""
    return [{"id": i, "name": name, "price": price} for i in ids]


@pytest.fixture
def make_items():
    return items
