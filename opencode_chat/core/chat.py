"""Chat state for one session: transcript, pending prompt and streaming buffers.

The event stream delivers deltas for every session on the server. The
controller keeps the ones for its current session, accumulates them per
message id in arrival order and ends the turn on ``idle`` or ``error``.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from opencode_chat.api.client import OpenCodeClient, new_message_id
from opencode_chat.api.models import ChatMessage
from opencode_chat.api.parts import OtherPart, ReasoningPart, TextPart, ToolCallPart, ToolResultPart
from opencode_chat.core.connection import Selection
from opencode_chat.utils.errors import OpenCodeError, UsageError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)


class EntryKind(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SYSTEM = "system"
    ERROR = "error"
    OTHER = "other"


class TranscriptEntry(BaseModel):
    id: str
    kind: EntryKind
    text: str = ""
    message_id: Optional[str] = None
    timestamp_ms: Optional[int] = None
    detail: Optional[str] = None
    streaming: bool = False
    is_error: bool = False


def entries_from_message(message: ChatMessage, session_id: str = "") -> List[TranscriptEntry]:
    """Flatten a stored message into transcript entries, one per part."""
    info = message.info
    owner = info.id or info.session_id or session_id
    entries = []
    for part in message.parts:
        base = {
            "id": f"{owner}:{part.id}",
            "message_id": info.id,
            "timestamp_ms": part.time.start if part.time else None,
        }
        if isinstance(part, TextPart):
            kind = EntryKind.USER if info.is_user else EntryKind.ASSISTANT
            entries.append(TranscriptEntry(kind=kind, text=part.text, **base))
        elif isinstance(part, ReasoningPart):
            entries.append(TranscriptEntry(kind=EntryKind.REASONING, text=part.text, **base))
        elif isinstance(part, ToolCallPart):
            entries.append(
                TranscriptEntry(
                    kind=EntryKind.TOOL_CALL,
                    text=f"{part.name or 'tool'} [{part.tool_status.value}]",
                    detail=part.input,
                    **base,
                )
            )
        elif isinstance(part, ToolResultPart):
            entries.append(
                TranscriptEntry(
                    kind=EntryKind.TOOL_RESULT,
                    text=part.result or "",
                    detail=part.tool_call_id,
                    is_error=part.is_error,
                    **base,
                )
            )
        elif isinstance(part, OtherPart):
            entries.append(TranscriptEntry(kind=EntryKind.OTHER, text=f"Unsupported part: {part.type}", **base))
    return entries


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatController:
    """Owns the mutable chat state the client and event stream leave to the caller.

    Listener callbacks are optional and called synchronously:

    - ``on_delta(message_id, delta)`` for each accepted delta
    - ``on_entry(entry)`` for each new transcript entry that is not a delta
    - ``on_turn_end(error)`` when the pending turn ends (``error`` is None on idle)
    """

    def __init__(
        self,
        client: OpenCodeClient,
        session_id: Optional[str] = None,
        selection: Optional[Callable[[], Selection]] = None,
        on_delta: Optional[Callable[[str, str], None]] = None,
        on_entry: Optional[Callable[[TranscriptEntry], None]] = None,
        on_turn_end: Optional[Callable[[Optional[str]], None]] = None,
    ):
        self.client = client
        self.selection = selection or Selection
        self.on_delta = on_delta
        self.on_entry = on_entry
        self.on_turn_end = on_turn_end

        self.session_id: Optional[str] = None
        self.pending_message_id: Optional[str] = None
        self.is_sending = False
        self.stream_connected = False
        self.draft = ""
        self.last_error: Optional[str] = None
        self.transcript: List[TranscriptEntry] = []
        self._buffers: Dict[str, str] = {}
        self._turn_done = asyncio.Event()
        self._turn_done.set()
        self._connected = asyncio.Event()

        if session_id:
            self.set_session(session_id)

    # -- Session --------------------------------------------------------------

    def set_session(self, session_id: str) -> None:
        """Switch to another session and start from an empty transcript."""
        self.session_id = session_id
        self.pending_message_id = None
        self.last_error = None
        self.transcript = []
        self._buffers = {}
        self._turn_done.set()
        logger.debug(f"Chat switched to session {session_id}")

    async def load_history(self) -> List[TranscriptEntry]:
        session_id = self._require_session()
        messages = await self.client.get_session_messages(session_id)
        self.transcript = [entry for message in messages for entry in entries_from_message(message, session_id)]
        return self.transcript

    def _require_session(self) -> str:
        if not self.session_id:
            raise UsageError("No session selected", hint="Create one with /sessions or pass a session id")
        return self.session_id

    # -- Stream ---------------------------------------------------------------

    async def start_stream(self) -> None:
        await self.client.connect_event_source(
            on_delta=self.handle_delta,
            on_idle=self.handle_idle,
            on_error=self.handle_error,
            on_connected=self.handle_connected,
            on_disconnected=self.handle_disconnected,
        )

    async def stop_stream(self) -> None:
        await self.client.disconnect_event_source()
        self.stream_connected = False
        self._connected.clear()
        self._add(EntryKind.SYSTEM, "Streaming paused")

    def handle_delta(self, session_id: str, message_id: str, delta: str) -> None:
        if session_id != self.session_id:
            return
        text = self._buffers.get(message_id, "") + delta
        self._buffers[message_id] = text

        entry_id = f"stream:{message_id}"
        for entry in reversed(self.transcript):
            if entry.id == entry_id:
                entry.text = text
                break
        else:
            self.transcript.append(
                TranscriptEntry(
                    id=entry_id,
                    kind=EntryKind.ASSISTANT,
                    text=text,
                    message_id=message_id,
                    streaming=True,
                )
            )
        if self.on_delta is not None:
            self.on_delta(message_id, delta)

    def handle_idle(self, session_id: str) -> None:
        if session_id != self.session_id:
            return
        self._end_turn(None)

    def handle_error(self, session_id: str, error: str) -> None:
        if session_id != self.session_id:
            return
        self.last_error = error
        self._add(EntryKind.ERROR, f"Session error: {error}")
        self._end_turn(error)

    def handle_connected(self) -> None:
        self.stream_connected = True
        self._connected.set()
        self._add(EntryKind.SYSTEM, "Connected to stream")

    def handle_disconnected(self) -> None:
        self.stream_connected = False
        self._connected.clear()
        self._add(EntryKind.SYSTEM, "Stream disconnected, reconnecting")

    async def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """Wait until the event stream is up. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def streaming_text(self, message_id: str) -> str:
        return self._buffers.get(message_id, "")

    def _end_turn(self, error: Optional[str]) -> None:
        for entry in self.transcript:
            entry.streaming = False
        self._buffers.clear()
        was_pending = self.pending_message_id is not None
        self.pending_message_id = None
        self._turn_done.set()
        if was_pending and self.on_turn_end is not None:
            self.on_turn_end(error)

    def _add(self, kind: EntryKind, text: str, message_id: Optional[str] = None) -> TranscriptEntry:
        now = _now_ms()
        entry = TranscriptEntry(
            id=f"{kind.value}:{message_id or now}:{len(self.transcript)}",
            kind=kind,
            text=text,
            message_id=message_id,
            timestamp_ms=now,
            is_error=kind == EntryKind.ERROR,
        )
        self.transcript.append(entry)
        if self.on_entry is not None:
            self.on_entry(entry)
        return entry

    # -- Sending --------------------------------------------------------------

    async def send(self, text: str) -> Optional[str]:
        """Send a prompt for the current session and return its message id.

        Returns None for blank input. On failure the typed text stays in
        :attr:`draft`, the sending state is rolled back and the error is
        re-raised for the caller to show.
        """
        text = text.strip()
        if not text:
            return None
        session_id = self._require_session()

        self.draft = text
        message_id = new_message_id()
        selection = self.selection()
        self.is_sending = True
        self.last_error = None
        self.pending_message_id = message_id
        self._turn_done.clear()
        self._add(EntryKind.USER, text, message_id=message_id)

        try:
            await self.client.send_message_async(
                session_id,
                text,
                provider_id=selection.provider_id,
                model_id=selection.model_id,
                message_id=message_id,
            )
        except OpenCodeError as e:
            logger.error(f"Failed to send prompt to session {session_id}: {e}")
            self.pending_message_id = None
            self.last_error = str(e)
            self._turn_done.set()
            self._add(EntryKind.ERROR, f"Failed to send: {e}")
            raise
        finally:
            self.is_sending = False

        self.draft = ""
        return message_id

    async def wait_for_turn(self, timeout: Optional[float] = None) -> bool:
        """Wait until the pending turn ends. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._turn_done.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True
