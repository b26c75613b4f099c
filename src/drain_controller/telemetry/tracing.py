"""Tracing of reconciliation passes."""

import functools
from enum import Enum
from typing import Any, Callable, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

TRACER_NAME = "drain_controller"

SpanAttributes = Callable[..., dict[str, Any]]


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


def traced(name: str, attributes: Optional[SpanAttributes] = None) -> Callable:
    """
    Run a coroutine inside a span.

    Args:
        name: Span name
        attributes: Called with the coroutine's arguments, returns the span
            attributes, e.g. the node or controller being reconciled

    Example:
        @traced("process_node", attributes=lambda self, node, *_: {"k8s.node.name": node.name})
        async def process_node(self, node, cache=None):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            span_attributes = attributes(*args, **kwargs) if attributes else {}
            with get_tracer().start_as_current_span(
                name,
                attributes=span_attributes,
                record_exception=False,
                set_status_on_exception=False,
            ) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise
                if isinstance(result, Enum):
                    span.set_attribute("drain.result", result.value)
                return result

        return wrapper

    return decorator
