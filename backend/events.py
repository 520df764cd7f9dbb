"""
Real-time event emitter registry for SSE streaming.

Agent nodes running inside LangGraph push log events straight into the
in-memory job store, so the SSE stream delivers them while documents are
still being analysed rather than after every document has finished.
"""

import time
from typing import Any, Callable

# analysis_id → callback that appends an event dict to the job's event list
_emitters: dict[str, Callable[[dict[str, Any]], None]] = {}


def register(analysis_id: str, callback: Callable[[dict[str, Any]], None]) -> None:
    """Register an event callback for an analysis run."""
    _emitters[analysis_id] = callback


def unregister(analysis_id: str) -> None:
    """Remove the callback after the run finishes."""
    _emitters.pop(analysis_id, None)


def _emit(analysis_id: str, event: dict[str, Any]) -> None:
    cb = _emitters.get(analysis_id)
    if cb:
        cb(event)


def emit_log(analysis_id: str, agent: str, message: str, document_index: int | None = None) -> None:
    """Push a log event to the SSE stream in real-time."""
    _emit(analysis_id, {
        "type": "log",
        "agent": agent,
        "document_index": document_index,
        "message": message,
        "timestamp": str(int(time.time() * 1000)),
    })


def emit_node_complete(analysis_id: str, agent: str, duration_ms: int, document_index: int | None = None) -> None:
    """Push a node_complete event to the SSE stream."""
    _emit(analysis_id, {
        "type": "node_complete",
        "agent": agent,
        "document_index": document_index,
        "duration_ms": duration_ms,
    })


def emit_document_complete(analysis_id: str, document_index: int, report: dict[str, Any]) -> None:
    """Push the finalized report of one document as soon as it is ready."""
    _emit(analysis_id, {
        "type": "document_complete",
        "document_index": document_index,
        "report": report,
    })


def emit_document_error(analysis_id: str, document_index: int, message: str) -> None:
    """Report a failed document without ending the stream for its siblings."""
    _emit(analysis_id, {
        "type": "document_error",
        "document_index": document_index,
        "message": message,
    })
