"""OpenCode server API: wire model, transport, event stream and client facade."""

from opencode_chat.api.client import OpenCodeClient, new_message_id
from opencode_chat.api.event_stream import ConnectionState, ConnectionStatus, EventStreamManager, backoff_delay_ms
from opencode_chat.api.events import DeltaEvent, IdleEvent, SessionErrorEvent, StreamEvent, decode_event
from opencode_chat.api.models import ChatMessage, HealthResponse, Model, PathInfo, Project, Provider, ProvidersResponse, Session
from opencode_chat.api.parts import (
    OtherPart,
    Part,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    ToolStatus,
    decode_part,
    encode_part,
)
from opencode_chat.api.transport import HttpTransport

__all__ = [
    "OpenCodeClient",
    "new_message_id",
    "HttpTransport",
    "EventStreamManager",
    "ConnectionState",
    "ConnectionStatus",
    "backoff_delay_ms",
    "StreamEvent",
    "DeltaEvent",
    "IdleEvent",
    "SessionErrorEvent",
    "decode_event",
    "Session",
    "ChatMessage",
    "HealthResponse",
    "Project",
    "PathInfo",
    "Model",
    "Provider",
    "ProvidersResponse",
    "Part",
    "TextPart",
    "ReasoningPart",
    "ToolCallPart",
    "ToolResultPart",
    "OtherPart",
    "ToolStatus",
    "decode_part",
    "encode_part",
]
