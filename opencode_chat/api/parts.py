"""Message parts: the typed units of message content.

A part is dispatched strictly on its ``type`` string. Known tags map to a
dedicated model; anything else becomes :class:`OtherPart`, which keeps the
raw tag and payload so nothing is lost for newer servers.
"""

import json
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import Field, field_validator

from opencode_chat.api.base import WireModel


class ToolStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class PartTime(WireModel):
    start: int = 0
    end: Optional[int] = None


class PartBase(WireModel):
    id: str = ""
    # Back-references only; a part is owned by the message that lists it
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    message_id: Optional[str] = Field(default=None, alias="messageID")
    time: Optional[PartTime] = None


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


class TextPart(PartBase):
    type: Literal["text"] = "text"
    text: str = ""
    synthetic: bool = False
    ignored: bool = False


class ReasoningPart(PartBase):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""
    metadata: Optional[Dict[str, Any]] = None


class ToolCallPart(PartBase):
    type: Literal["tool_call"] = "tool_call"
    tool_call_id: Optional[str] = Field(default=None, alias="toolCallID")
    name: Optional[str] = None
    input: Optional[str] = None
    status: Optional[str] = None
    result: Optional[str] = None

    @field_validator("input", "result", mode="before")
    @classmethod
    def _serialize_payload(cls, value: Any) -> Any:
        return _as_text(value)

    @property
    def tool_status(self) -> ToolStatus:
        """Status as an enum; unknown or missing values count as completed."""
        try:
            return ToolStatus(self.status)
        except ValueError:
            return ToolStatus.COMPLETED


class ToolResultPart(PartBase):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: Optional[str] = Field(default=None, alias="toolCallID")
    result: Optional[str] = None
    is_error: bool = Field(default=False, alias="isError")

    @field_validator("result", mode="before")
    @classmethod
    def _serialize_result(cls, value: Any) -> Any:
        return _as_text(value)


class OtherPart(PartBase):
    """Catch-all for part types this client does not know about."""

    type: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


Part = Union[TextPart, ReasoningPart, ToolCallPart, ToolResultPart, OtherPart]

_PART_TYPES: Dict[str, type] = {
    "text": TextPart,
    "reasoning": ReasoningPart,
    "tool_call": ToolCallPart,
    "tool_result": ToolResultPart,
}


def decode_part(data: Any) -> Part:
    """Decode one part. Never raises; unrecognized tags become OtherPart."""
    if not isinstance(data, dict):
        data = {}
    part_type = data.get("type")
    if not isinstance(part_type, str):
        part_type = ""

    variant = _PART_TYPES.get(part_type)
    if variant is not None:
        return variant.decode(data)
    return OtherPart.decode({**data, "type": part_type, "data": dict(data)})


def encode_part(part: Part) -> Dict[str, Any]:
    """Inverse of :func:`decode_part`. OtherPart gives back its raw payload."""
    if isinstance(part, OtherPart):
        payload = dict(part.data)
        payload["type"] = part.type
        return payload
    return part.to_wire()
