"""
Prometheus helpers: duplicate-safe registration and the /metrics endpoint.

Usage:
    from syncutils.metrics import get_or_create_metric, MetricsPublisher

    ROWS = get_or_create_metric(
        lambda: Counter("rows_total", "Rows seen", ["table"]),
        "rows_total",
    )

    MetricsPublisher(port=9108).start()
"""

import logging
from typing import Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry, start_http_server

logger = logging.getLogger(__name__)

M = TypeVar("M")


def get_or_create_metric(
    factory: Callable[[], M],
    name: str,
    registry: CollectorRegistry = REGISTRY,
) -> M:
    """
    Build a metric with ``factory``; if ``name`` is already registered
    (a module imported twice under test collection or ``importlib.reload``)
    return the registered collector instead.
    """
    try:
        return factory()
    except ValueError:
        registered = registry._names_to_collectors.get(name)
        if registered is None:
            raise
        return registered


class MetricsPublisher:
    """Serves a registry on ``http://0.0.0.0:<port>/metrics``."""

    def __init__(self, port: int = 9108, registry: CollectorRegistry | None = None):
        self.port = port
        self.registry = registry or REGISTRY
        self._listening = False

    def start(self) -> None:
        if self._listening:
            logger.warning(f"/metrics already served on port {self.port}")
            return
        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            raise RuntimeError(f"Metrics server could not bind port {self.port}: {e}") from e
        self._listening = True
        logger.info(f"Serving /metrics on port {self.port}")

    def is_started(self) -> bool:
        return self._listening
