"""Langfuse backend for agent traces.

Replays a closed span tree as one Langfuse trace with nested spans. Uses the
Langfuse v2 client API (``trace()``/``span()``).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from langfuse import Langfuse

from europa_agent.core.tracing import TraceStore

logger = logging.getLogger(__name__)

# span fields that are reported as input/output rather than metadata
_INPUT_KEYS = ("request", "args", "call", "message_templates", "question", "step", "plan")
_OUTPUT_KEYS = ("response", "messages", "content", "valid", "errors")
_TIMING_KEYS = ("start_time", "end_time", "elapsed_millis", "children", "id", "type")


def _to_datetime(millis: Optional[int]) -> Optional[datetime]:
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def _split_fields(span: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    inputs = {k: span[k] for k in _INPUT_KEYS if k in span}
    outputs = {k: span[k] for k in _OUTPUT_KEYS if k in span}
    metadata = {
        k: v for k, v in span.items()
        if k not in _INPUT_KEYS and k not in _OUTPUT_KEYS and k not in _TIMING_KEYS
    }
    return inputs, outputs, metadata


class LangfuseTraceStore(TraceStore):
    """Sends traces to Langfuse."""

    def __init__(self, client: Langfuse) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any) -> "LangfuseTraceStore":
        if not settings.LANGFUSE_PUBLIC_KEY or not settings.LANGFUSE_SECRET_KEY:
            raise ValueError("TRACE_BACKEND=langfuse requires LANGFUSE_PUBLIC_KEY and LANGFUSE_SECRET_KEY")
        client = Langfuse(
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
            host=settings.LANGFUSE_HOST,
        )
        logger.info(f"Langfuse tracing initialized: host={settings.LANGFUSE_HOST}")
        return cls(client)

    async def upsert_trace(self, record: dict[str, Any]) -> None:
        spans = record.get("trace", [])
        root = spans[0] if spans else {}
        trace = self._client.trace(
            name=record.get("name", "agent"),
            user_id=record.get("username"),
            metadata={"trace_type": record.get("trace_type"), "workspace_id": record.get("workspace_id")},
            input=root.get("args"),
            output=root.get("response"),
        )
        for span in spans:
            self._add_span(trace, span)
        self._client.flush()
        logger.debug(f"Langfuse trace sent: {record.get('name')}")

    def _add_span(self, parent: Any, span: dict[str, Any]) -> None:
        inputs, outputs, metadata = _split_fields(span)
        child = parent.span(
            name=span.get("type", "span"),
            start_time=_to_datetime(span.get("start_time")),
            end_time=_to_datetime(span.get("end_time")),
            input=inputs or None,
            output=outputs or None,
            metadata=metadata or None,
            level="ERROR" if span.get("success") is False else "DEFAULT",
        )
        for sub in span.get("children", []):
            self._add_span(child, sub)
