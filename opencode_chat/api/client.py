import uuid
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from opencode_chat.api.base import decode_list
from opencode_chat.api.event_stream import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_RECONNECT_BASE_MS,
    DEFAULT_RECONNECT_MAX_MS,
    Callback,
    ConnectionState,
    EventStreamManager,
)
from opencode_chat.api.models import ChatMessage, HealthResponse, PathInfo, Project, ProvidersResponse, Session
from opencode_chat.api.transport import DEFAULT_TIMEOUT, HttpTransport
from opencode_chat.utils.errors import OpenCodeError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)


def new_message_id() -> str:
    """Client-generated id used to correlate a prompt with its streamed deltas."""
    return f"msg_{uuid.uuid4().hex}"


def _session_path(session_id: str, suffix: str = "") -> str:
    return f"/session/{quote(session_id, safe='')}{suffix}"


def _is_success(response: Any) -> bool:
    """Explicit ``success`` flag, or an empty body."""
    if isinstance(response, bool):
        return response
    if isinstance(response, dict):
        return response.get("success") is True or not response
    return False


class OpenCodeClient:
    """Domain operations against an OpenCode server.

    Request/response calls go through one :class:`HttpTransport`; the event
    stream runs on its own connection in an :class:`EventStreamManager`.
    Both target the same base URL.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        reconnect_base_ms: int = DEFAULT_RECONNECT_BASE_MS,
        reconnect_max_ms: int = DEFAULT_RECONNECT_MAX_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **stream_options: Any,
    ):
        self.http = HttpTransport(base_url, timeout=timeout, transport=transport)
        self.events = EventStreamManager(
            self.http.base_url,
            transport=transport,
            connect_timeout=connect_timeout,
            reconnect_base_ms=reconnect_base_ms,
            reconnect_max_ms=reconnect_max_ms,
            **stream_options,
        )

    @property
    def base_url(self) -> str:
        return self.http.base_url

    def set_base_url(self, url: str) -> None:
        """Retarget both connections. A live event stream keeps its old URL until reconnected."""
        self.http.set_base_url(url)
        self.events.set_base_url(url)

    # -- Server ---------------------------------------------------------------

    async def health_check(self) -> HealthResponse:
        """Check server health. Errors propagate: this gates initial setup."""
        return HealthResponse.decode(await self.http.get("/global/health"))

    async def get_current_project(self) -> Optional[Project]:
        try:
            return Project.decode(await self.http.get("/project/current"))
        except OpenCodeError as e:
            logger.warning(f"Could not load current project: {e}")
            return None

    async def get_path_info(self) -> Optional[PathInfo]:
        try:
            return PathInfo.decode(await self.http.get("/path"))
        except OpenCodeError as e:
            logger.warning(f"Could not load path info: {e}")
            return None

    # -- Sessions -------------------------------------------------------------

    async def list_sessions(self) -> List[Session]:
        return decode_list(Session, await self.http.get("/session"))

    async def create_session(self, title: Optional[str] = None) -> Session:
        body = {}
        if title is not None:
            body["title"] = title
        session = Session.decode(await self.http.post("/session", body))
        logger.info(f"Created session {session.id}")
        return session

    async def delete_session(self, session_id: str) -> bool:
        deleted = _is_success(await self.http.delete(_session_path(session_id)))
        if deleted:
            logger.info(f"Deleted session {session_id}")
        else:
            logger.warning(f"Server did not confirm deletion of session {session_id}")
        return deleted

    async def get_session_messages(self, session_id: str) -> List[ChatMessage]:
        return decode_list(ChatMessage, await self.http.get(_session_path(session_id, "/message")))

    async def init_session(self, session_id: str, provider_id: str, model_id: str, message_id: str) -> bool:
        body = {"providerID": provider_id, "modelID": model_id, "messageID": message_id}
        return _is_success(await self.http.post(_session_path(session_id, "/init"), body))

    async def send_message_async(
        self,
        session_id: str,
        text: str,
        provider_id: Optional[str] = None,
        model_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> str:
        """Post a text prompt and return its message id once the server acknowledges it.

        The assistant's reply arrives later as ``message.part.delta`` events
        carrying the returned id, and ends with ``session.idle``.
        """
        message_id = message_id or new_message_id()
        body = {
            "parts": [{"type": "text", "text": text}],
            "messageID": message_id,
        }
        if provider_id is not None and model_id is not None:
            body["model"] = {"providerID": provider_id, "modelID": model_id}

        await self.http.post(_session_path(session_id, "/prompt_async"), body)
        logger.debug(f"Prompt {message_id} accepted for session {session_id}")
        return message_id

    # -- Providers ------------------------------------------------------------

    async def get_providers(self) -> ProvidersResponse:
        return ProvidersResponse.decode(await self.http.get("/provider"))

    # -- Event stream ---------------------------------------------------------

    async def connect_event_source(
        self,
        on_delta: Optional[Callback] = None,
        on_idle: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        on_connected: Optional[Callback] = None,
        on_disconnected: Optional[Callback] = None,
    ) -> None:
        await self.events.connect(on_delta, on_idle, on_error, on_connected, on_disconnected)

    async def disconnect_event_source(self) -> None:
        await self.events.disconnect()

    def is_event_source_connected(self) -> bool:
        return self.events.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self.events.state

    async def aclose(self) -> None:
        await self.events.aclose()
        await self.http.aclose()

    async def __aenter__(self) -> "OpenCodeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
