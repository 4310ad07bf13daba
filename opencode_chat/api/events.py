"""Decoding for the ``GET /event`` server-sent-events stream.

Every SSE message carries a JSON envelope ``{"type": ..., "properties": {...}}``.
Only three envelope types matter to the client; all others, and payloads that
are not valid JSON, decode to ``None`` and are skipped by the caller.
"""

import json
from typing import Any, AsyncIterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict

DELTA_EVENT = "message.part.delta"
IDLE_EVENT = "session.idle"
ERROR_EVENT = "session.error"

UNKNOWN_ERROR = "Unknown error"


class DeltaEvent(BaseModel):
    """Incremental assistant text for one message."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    message_id: str
    delta: str


class IdleEvent(BaseModel):
    """The assistant finished its turn for a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str


class SessionErrorEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    error: str


StreamEvent = Union[DeltaEvent, IdleEvent, SessionErrorEvent]


def _string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _error_message(value: Any) -> str:
    if isinstance(value, dict):
        # Server errors look like {"name": ..., "data": {"message": ...}}
        data = value.get("data")
        if isinstance(data, dict) and data.get("message"):
            return _string(data["message"])
        if value.get("message"):
            return _string(value["message"])
        if value.get("name"):
            return _string(value["name"])
        return json.dumps(value)
    # Blank and missing errors both get the placeholder
    return _string(value) or UNKNOWN_ERROR


def decode_event(data: str) -> Optional[StreamEvent]:
    """Decode one SSE data payload, or return None if it is not of interest."""
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None

    props = payload.get("properties")
    if not isinstance(props, dict):
        return None
    event_type = payload.get("type")
    session_id = _string(props.get("sessionID"))

    if event_type == DELTA_EVENT:
        delta = _string(props.get("delta"))
        if not delta:
            return None
        return DeltaEvent(
            session_id=session_id,
            message_id=_string(props.get("messageID")),
            delta=delta,
        )
    if event_type == IDLE_EVENT:
        return IdleEvent(session_id=session_id)
    if event_type == ERROR_EVENT:
        return SessionErrorEvent(session_id=session_id, error=_error_message(props.get("error")))
    return None


class SSEDecoder:
    """Line-oriented SSE framing: collects ``data:`` lines until a blank line."""

    def __init__(self):
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[str]:
        """Consume one line (without its terminator); return a payload when complete."""
        if line == "":
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        # event, id and retry fields carry nothing the client uses
        return None


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield complete SSE data payloads from an async iterator of lines."""
    decoder = SSEDecoder()
    async for line in lines:
        payload = decoder.feed(line.rstrip("\r"))
        if payload is not None:
            yield payload
