"""Persistent ``GET /event`` subscription with exponential-backoff reconnect.

The manager owns exactly one background task per connection. That task opens
the stream, dispatches decoded events to the caller's callbacks in arrival
order and, when the stream drops, waits and tries again until it succeeds or
the task is cancelled by :meth:`EventStreamManager.disconnect`.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Optional

import httpx

from opencode_chat.api.events import DeltaEvent, IdleEvent, SessionErrorEvent, StreamEvent, decode_event, iter_sse_data
from opencode_chat.api.transport import validate_base_url
from opencode_chat.utils.errors import HttpError, StreamDisconnected
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RECONNECT_BASE_MS = 1000
DEFAULT_RECONNECT_MAX_MS = 30000
DEFAULT_CONNECT_TIMEOUT = 15.0


def backoff_delay_ms(
    attempt: int,
    base_ms: int = DEFAULT_RECONNECT_BASE_MS,
    max_ms: int = DEFAULT_RECONNECT_MAX_MS,
) -> int:
    """Delay before reconnect attempt ``attempt`` (1-based): ``base * 2**attempt``, capped."""
    if attempt < 0:
        attempt = 0
    # Past this point the shift only grows the number; the cap already applies
    if attempt > 32:
        return max_ms
    return min(base_ms * (2**attempt), max_ms)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus
    attempt: int = 0
    delay_ms: int = 0
    message: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.DISCONNECTED)

    @classmethod
    def connecting(cls, attempt: int = 0) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTING, attempt=attempt)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTED)

    @classmethod
    def reconnecting(cls, attempt: int, delay_ms: int) -> "ConnectionState":
        return cls(ConnectionStatus.RECONNECTING, attempt=attempt, delay_ms=delay_ms)

    @classmethod
    def error(cls, message: str, attempt: int = 0) -> "ConnectionState":
        return cls(ConnectionStatus.ERROR, attempt=attempt, message=message)

    def describe(self) -> str:
        if self.status == ConnectionStatus.RECONNECTING:
            return f"reconnecting (attempt {self.attempt}, retry in {self.delay_ms / 1000:.0f}s)"
        if self.status == ConnectionStatus.ERROR:
            return f"error: {self.message}"
        return self.status.value


Callback = Callable[..., Any]


class StreamHandlers(NamedTuple):
    on_delta: Optional[Callback] = None
    on_idle: Optional[Callback] = None
    on_error: Optional[Callback] = None
    on_connected: Optional[Callback] = None
    on_disconnected: Optional[Callback] = None


class EventStreamManager:
    """Maintains at most one live event-stream connection.

    Callbacks may be plain functions or coroutine functions:

    - ``on_delta(session_id, message_id, delta)``
    - ``on_idle(session_id)``
    - ``on_error(session_id, error)``
    - ``on_connected()`` after every successful (re)connect
    - ``on_disconnected()`` once per outage, when a live or first-attempt
      connection fails; never for an explicit :meth:`disconnect`

    Callbacks receive events for every session on the server; filtering is
    up to the caller.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        reconnect_base_ms: int = DEFAULT_RECONNECT_BASE_MS,
        reconnect_max_ms: int = DEFAULT_RECONNECT_MAX_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_state_change: Optional[Callable[[ConnectionState], Any]] = None,
    ):
        self._base_url = validate_base_url(base_url)
        self._transport = transport
        self.connect_timeout = connect_timeout
        self.reconnect_base_ms = reconnect_base_ms
        self.reconnect_max_ms = reconnect_max_ms
        self._sleep = sleep
        self.on_state_change = on_state_change

        self._task: Optional[asyncio.Task] = None
        self._state = ConnectionState.disconnected()
        self._attempt = 0

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, url: str) -> None:
        """Retarget the manager. Takes effect on the next :meth:`connect`."""
        self._base_url = validate_base_url(url)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.status == ConnectionStatus.CONNECTED

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"Event stream state: {state.describe()}")
        if self.on_state_change is not None:
            try:
                self.on_state_change(state)
            except Exception:
                logger.exception("Connection state listener failed")

    async def connect(
        self,
        on_delta: Optional[Callback] = None,
        on_idle: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        on_connected: Optional[Callback] = None,
        on_disconnected: Optional[Callback] = None,
    ) -> None:
        """Open the stream in the background, replacing any previous connection.

        Raises:
            InvalidConfigurationError: the base URL is malformed. Every other
                failure is reported through the callbacks.
        """
        url = validate_base_url(self._base_url)
        await self.disconnect()

        handlers = StreamHandlers(on_delta, on_idle, on_error, on_connected, on_disconnected)
        self._attempt = 0
        self._set_state(ConnectionState.connecting())
        self._task = asyncio.create_task(self._run(url, handlers), name="opencode-event-stream")
        logger.info(f"Event stream starting for {url}")

    async def disconnect(self) -> None:
        """Cancel the connection and any pending reconnect wait. Safe to repeat."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            # A callback may disconnect from inside the stream task itself
            if task is not asyncio.current_task():
                await asyncio.wait({task})
            logger.info("Event stream disconnected")
        self._set_state(ConnectionState.disconnected())

    async def _run(self, url: str, handlers: StreamHandlers) -> None:
        timeout = httpx.Timeout(self.connect_timeout, read=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            while True:
                self._set_state(ConnectionState.connecting(self._attempt))
                try:
                    await self._stream(client, url, handlers)
                except Exception as e:
                    # Anything short of cancellation is retried
                    reason = str(e) or type(e).__name__
                    logger.warning(f"Event stream lost: {reason}")
                    self._set_state(ConnectionState.error(reason, self._attempt))
                    if self._attempt == 0:
                        await self._call(handlers.on_disconnected)

                self._attempt += 1
                delay_ms = backoff_delay_ms(self._attempt, self.reconnect_base_ms, self.reconnect_max_ms)
                self._set_state(ConnectionState.reconnecting(self._attempt, delay_ms))
                logger.info(f"Reconnecting event stream in {delay_ms}ms (attempt {self._attempt})")
                await self._sleep(delay_ms / 1000)

    async def _stream(self, client: httpx.AsyncClient, url: str, handlers: StreamHandlers) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        async with client.stream("GET", f"{url}/event", headers=headers) as response:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise HttpError(response.status_code, body, method="GET", path="/event")

            self._attempt = 0
            self._set_state(ConnectionState.connected())
            logger.info(f"Event stream connected to {url}")
            await self._call(handlers.on_connected)

            async for data in iter_sse_data(response.aiter_lines()):
                event = decode_event(data)
                if event is None:
                    logger.debug(f"Ignoring event payload: {data[:120]}")
                    continue
                await self._dispatch(event, handlers)

        raise StreamDisconnected("Event stream closed by server")

    async def _dispatch(self, event: StreamEvent, handlers: StreamHandlers) -> None:
        if isinstance(event, DeltaEvent):
            await self._call(handlers.on_delta, event.session_id, event.message_id, event.delta)
        elif isinstance(event, IdleEvent):
            await self._call(handlers.on_idle, event.session_id)
        elif isinstance(event, SessionErrorEvent):
            await self._call(handlers.on_error, event.session_id, event.error)

    async def _call(self, callback: Optional[Callback], *args) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Event stream callback {getattr(callback, '__name__', callback)!r} failed")

    async def aclose(self) -> None:
        await self.disconnect()

    async def __aenter__(self) -> "EventStreamManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
