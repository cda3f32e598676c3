"""
Explicit configuration objects.

Connection settings for each side are resolved from CLI flags first, then
environment variables (``SOURCE_DB_*`` / ``DEST_DB_*``), or entirely from
HashiCorp Vault. Operational controls live in ``SyncSettings``. Nothing here
is process global: callers build the objects and pass them down.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigurationError
from .sql.dialect import get_dialect

logger = logging.getLogger(__name__)

ENV_PREFIXES = {
    "source": "SOURCE_DB",
    "destination": "DEST_DB",
}

DEFAULT_PORTS = {
    "postgresql": 5432,
    "sqlserver": 1433,
}

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

DEFAULT_PAGE_SIZE = 10000
DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_PAYLOAD_BYTES = 4 * 1024 * 1024


@dataclass
class ConnectionConfig:
    dialect: str
    host: str
    database: str
    username: str
    password: str | None = None
    port: int | None = None
    driver: str = DEFAULT_ODBC_DRIVER

    def __post_init__(self):
        self.dialect = get_dialect(self.dialect).name
        if self.port is None:
            self.port = DEFAULT_PORTS[self.dialect]
        self.port = int(self.port)

    def validate(self) -> None:
        missing = [
            name for name in ("host", "database", "username")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing connection settings: {', '.join(missing)}")
        if self.password is None:
            raise ConfigurationError(f"No password configured for {self.describe()}")

    def describe(self) -> str:
        """``dialect://user@host:port/database`` without the password."""
        return f"{self.dialect}://{self.username}@{self.host}:{self.port}/{self.database}"

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ConnectionConfig":
        try:
            return cls(
                dialect=data["dialect"],
                host=data["host"],
                database=data["database"],
                username=data["username"],
                password=data.get("password"),
                port=data.get("port"),
                driver=data.get("driver") or DEFAULT_ODBC_DRIVER,
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing connection setting: {e.args[0]}") from None


def load_connection_config(
    side: str,
    overrides: dict[str, Any] | None = None,
    use_vault: bool = False,
    vault_client: Any = None,
) -> ConnectionConfig:
    """
    Resolve connection settings for ``source`` or ``destination``.

    Args:
        side: "source" or "destination"
        overrides: Values from CLI flags; None entries are ignored
        use_vault: Read the whole config from Vault secret ``database/<side>``
        vault_client: VaultClient to use (default: built from VAULT_ADDR/VAULT_TOKEN)

    Raises:
        ConfigurationError: Unknown side, incomplete settings, or Vault failure
    """
    if side not in ENV_PREFIXES:
        raise ConfigurationError(f"Unknown connection side: {side!r}")

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    if use_vault:
        from syncutils.vault_client import VaultClient

        try:
            client = vault_client or VaultClient()
            data = dict(client.get_database_credentials(side))
        except ValueError as e:
            raise ConfigurationError(f"Vault lookup for {side} failed: {e}") from e
        data.update(overrides)
        logger.info(f"Using Vault credentials for {side}")
    else:
        prefix = ENV_PREFIXES[side]
        data = {
            "dialect": os.getenv(f"{prefix}_DIALECT", "postgresql"),
            "host": os.getenv(f"{prefix}_HOST", "localhost"),
            "port": os.getenv(f"{prefix}_PORT"),
            "database": os.getenv(f"{prefix}_NAME"),
            "username": os.getenv(f"{prefix}_USER"),
            "password": os.getenv(f"{prefix}_PASSWORD"),
            "driver": os.getenv(f"{prefix}_DRIVER"),
        }
        data.update(overrides)

    config = ConnectionConfig.from_mapping(data)
    config.validate()
    return config


@dataclass(frozen=True)
class EquivalenceRules:
    """
    Column-value equivalences applied by the comparator drill-down.

    ``numeric_tolerance`` is relative: 0.001 treats 10.0 and 10.005 as equal.
    """

    null_equals_empty: bool = False
    null_equals_zero_date: bool = False
    numeric_tolerance: float = 0.0


@dataclass
class SyncSettings:
    page_size: int = DEFAULT_PAGE_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    include_tables: list[str] = field(default_factory=list)
    skip_tables: list[str] = field(default_factory=list)
    start_table: str | None = None
    start_key: tuple | None = None
    trailing_sweep: bool = False
    suspend_integrity_checks: bool = True
    equivalence: EquivalenceRules = field(default_factory=EquivalenceRules)

    def validate(self) -> None:
        for name in ("page_size", "batch_size", "max_payload_bytes"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        overlap = set(self.include_tables) & set(self.skip_tables)
        if overlap:
            raise ConfigurationError(
                f"Tables both included and skipped: {', '.join(sorted(overlap))}"
            )

        if self.start_key is not None and self.start_table is None:
            raise ConfigurationError("start_key requires start_table")

        if self.equivalence.numeric_tolerance < 0:
            raise ConfigurationError("numeric_tolerance must not be negative")
