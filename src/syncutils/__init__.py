"""
Shared infrastructure for rowsync

Provides:
- logging: structured/console logging setup
- tracing: OpenTelemetry spans around reconciliation operations
- metrics: Prometheus metric registration
- retry: backoff for connection establishment
- vault_client: HashiCorp Vault integration for credentials
"""

__version__ = "1.0.0"
__all__ = ["logging", "tracing", "metrics", "retry", "vault_client"]
