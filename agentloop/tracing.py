"""
agentloop - Span and trace identifiers.

Every ``run``/``run_stream`` call opens one trace. The agent span is the
root; each model call and tool call gets a child span whose
``parent_span_id`` points at the agent span. No tracing backend is needed:
the identifiers only flow through callback arguments.
"""

import secrets

from .models import SpanContext

TRACE_ID_BYTES = 16
SPAN_ID_BYTES = 8


def new_id(nbytes: int = SPAN_ID_BYTES) -> str:
    """Return a random hex identifier of ``nbytes`` bytes."""
    return secrets.token_hex(nbytes)


def new_trace() -> SpanContext:
    """Create a root span context with a fresh trace id."""
    return SpanContext(trace_id=new_id(TRACE_ID_BYTES), span_id=new_id())


def child_span(parent: SpanContext) -> SpanContext:
    """Create a span nested under ``parent`` within the same trace."""
    return SpanContext(
        trace_id=parent.trace_id,
        span_id=new_id(),
        parent_span_id=parent.span_id,
    )
