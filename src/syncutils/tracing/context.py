"""
Span helpers used around syncs, windows, flushes, audits and comparisons.

Attribute values are stringified: keys are tuples and ``None`` is a common
value, neither of which OpenTelemetry accepts as an attribute.
"""

from contextlib import contextmanager
from typing import Any

from opentelemetry import trace

from .tracer import get_tracer


def _as_attributes(values: dict[str, Any]) -> dict[str, str]:
    return {key: str(value) for key, value in values.items()}


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes,
):
    """
    Run the block inside a span named ``operation_name``.

    An exception leaving the block is recorded on the span (``error``,
    ``error.type``, ``error.message`` and an exception event) and re-raised.

    Example:
        >>> with trace_operation("sync_table", table="orders") as span:
        ...     result = sync_table(source, destination, table, settings)
        ...     span.set_attribute("rows.inserted", result.summary.inserts)
    """
    with get_tracer().start_as_current_span(
        operation_name, kind=kind, attributes=_as_attributes(attributes)
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_attributes({
                "error": True,
                "error.type": type(e).__name__,
                "error.message": str(e),
            })
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    """Stamp attributes on the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(_as_attributes(attributes))


def add_span_event(name: str, **attributes) -> None:
    """Add an event to the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=_as_attributes(attributes))
