"""
Database credentials from HashiCorp Vault (KV v2).

Each side of a sync keeps its connection secret at ``<mount>/database/<name>``
with ``dialect``, ``host``, ``database``, ``username`` and ``password``;
``port`` and ``driver`` are optional.
"""

import logging
import os
import re
from typing import Any

import requests

logger = logging.getLogger(__name__)

SAFE_PATH_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+(/[a-zA-Z0-9_-]+)*$")
SAFE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

REQUIRED_FIELDS = ("host", "database", "username", "password")

# 429 standby, 472 DR secondary, 473 performance standby
HEALTHY_STATUS_CODES = frozenset({200, 429, 472, 473})


def _require(value: str | None, what: str, env_var: str, argument: str) -> str:
    if not value:
        raise ValueError(f"Vault {what} not provided. Set {env_var} or pass {argument}.")
    return value


class VaultClient:
    """Read-only client for the KV v2 secrets engine."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_token: str | None = None,
        namespace: str | None = None,
        mount: str = "secret",
        timeout: float = 10.0,
    ):
        self.vault_addr = _require(
            vault_addr or os.getenv("VAULT_ADDR"), "address", "VAULT_ADDR", "vault_addr"
        ).rstrip("/")
        self.vault_token = _require(
            vault_token or os.getenv("VAULT_TOKEN"), "token", "VAULT_TOKEN", "vault_token"
        )
        self.mount = mount
        self.timeout = timeout

        self.headers = {"X-Vault-Token": self.vault_token, "Content-Type": "application/json"}
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

    def _data_url(self, secret_path: str) -> str:
        # Segments are plain names, so "..", leading "/" and empty parts never match
        if not SAFE_PATH_PATTERN.match(secret_path or ""):
            raise ValueError(
                f"Invalid secret_path: {secret_path!r}. Use slash-separated names of "
                "letters, digits, underscores and hyphens."
            )
        return f"{self.vault_addr}/v1/{self.mount}/data/{secret_path}"

    def get_secret(self, secret_path: str) -> dict[str, Any]:
        """
        Return the data of the secret at ``secret_path`` below the mount.

        Raises:
            ValueError: Invalid path, or the secret is missing or empty
            requests.RequestException: Transport or HTTP failure
        """
        url = self._data_url(secret_path)
        logger.debug(f"Reading Vault secret {url}")

        response = requests.get(url, headers=self.headers, timeout=self.timeout)
        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {secret_path}")
        response.raise_for_status()

        data = response.json().get("data", {}).get("data", {})
        if not data:
            raise ValueError(f"No data found in secret at path: {secret_path}")
        return data

    def get_database_credentials(self, name: str) -> dict[str, Any]:
        """Connection secret for one side (``source``, ``destination``, ...)."""
        if not SAFE_NAME_PATTERN.match(name or ""):
            raise ValueError(f"Invalid credential name: {name!r}")

        path = f"database/{name}"
        credentials = self.get_secret(path)

        missing = [field for field in REQUIRED_FIELDS if field not in credentials]
        if missing:
            raise ValueError(f"Missing required fields in secret {path}: {', '.join(missing)}")

        logger.info(f"Fetched {name} database credentials from Vault")
        return credentials

    def health_check(self) -> bool:
        """True when Vault answers as initialized and unsealed."""
        try:
            response = requests.get(f"{self.vault_addr}/v1/sys/health", timeout=5)
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
        return response.status_code in HEALTHY_STATUS_CODES
