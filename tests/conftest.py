"""
Shared pytest fixtures and helpers for OpenCode Chat tests.

Most tests run offline against a :class:`FakeServer`, an in-process stand-in
for ``opencode serve`` built on ``httpx.MockTransport``. Integration tests
talk to a real server when one is configured.

Environment Variables:
    OPENCODE_TEST_URL: Base URL of a live OpenCode server (e.g., "http://localhost:4096")
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import requests

import opencode_chat.utils.logging as app_logging

# =============================================================================
# Helper Functions
# =============================================================================


def get_opencode_url() -> Optional[str]:
    """Get the live server URL from the OPENCODE_TEST_URL env var, or None."""
    return os.environ.get("OPENCODE_TEST_URL")


def check_opencode_available(url: str) -> bool:
    """Check if an OpenCode server reports healthy at the given URL.

    Args:
        url: The base URL of the server (e.g., "http://localhost:4096")

    Returns:
        True if ``/global/health`` answers 200 with ``healthy: true``.
    """
    try:
        response = requests.get(f"{url.rstrip('/')}/global/health", timeout=5)
        return response.status_code == 200 and bool(response.json().get("healthy"))
    except (requests.exceptions.RequestException, ValueError):
        return False


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met before timeout")
        await asyncio.sleep(0.01)


def sse(payload: Any) -> bytes:
    """Frame one event the way the server does."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n".encode()


def delta_event(session_id: str, message_id: str, delta: str) -> Dict[str, Any]:
    return {
        "type": "message.part.delta",
        "properties": {"sessionID": session_id, "messageID": message_id, "delta": delta},
    }


def idle_event(session_id: str) -> Dict[str, Any]:
    return {"type": "session.idle", "properties": {"sessionID": session_id}}


def error_event(session_id: str, error: Any = None) -> Dict[str, Any]:
    props = {"sessionID": session_id}
    if error is not None:
        props["error"] = error
    return {"type": "session.error", "properties": props}


# =============================================================================
# Fake server
# =============================================================================


class FakeServer:
    """Canned OpenCode API served through ``httpx.MockTransport``.

    ``routes`` maps ``(METHOD, path)`` to a response or a callable taking the
    request. Each ``GET /event`` takes the next script from ``streams``: a
    list of SSE chunks, or an int status code. A script ends the stream
    unless ``hold_open`` is set; once ``streams`` runs out every further
    connection holds open. Held-open streams deliver whatever is later
    passed to :meth:`push`.
    """

    def __init__(self):
        self.routes: Dict[tuple, Any] = {}
        self.requests: List[httpx.Request] = []
        self.streams: List[Any] = []
        self.hold_open = True
        self.stream_connects = 0
        self.open_streams = 0
        self.live: asyncio.Queue = asyncio.Queue()

    def add(self, method: str, path: str, response: Any) -> None:
        self.routes[(method.upper(), path)] = response

    def json(self, method: str, path: str, data: Any, status: int = 200) -> None:
        self.add(method, path, lambda request: httpx.Response(status, json=data))

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def body(self, request: httpx.Request) -> Any:
        return json.loads(request.content or b"{}")

    def push(self, *payloads: Any) -> None:
        """Send events down the held-open stream."""
        for payload in payloads:
            self.live.put_nowait(sse(payload))

    def reply(self, *payloads: Any, status: int = 204) -> Callable[[httpx.Request], httpx.Response]:
        """Route that accepts a request and then streams ``payloads``, like a prompt."""

        def route(request: httpx.Request) -> httpx.Response:
            self.push(*payloads)
            return httpx.Response(status)

        return route

    async def _stream_body(self, chunks: List[bytes], hold_open: bool):
        self.open_streams += 1
        try:
            for chunk in chunks:
                yield chunk
                await asyncio.sleep(0)
            while hold_open:
                yield await self.live.get()
        finally:
            self.open_streams -= 1

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and request.url.path == "/event":
            self.stream_connects += 1
            if self.streams:
                script = self.streams.pop(0)
                hold_open = self.hold_open and not self.streams
            else:
                script, hold_open = [], True
            if isinstance(script, int):
                return httpx.Response(script, text="unavailable")
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=self._stream_body(list(script), hold_open),
            )

        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# =============================================================================
# Module-level Constants (evaluated once at collection time)
# =============================================================================

OPENCODE_URL: Optional[str] = get_opencode_url()
OPENCODE_CONFIGURED: bool = OPENCODE_URL is not None
OPENCODE_AVAILABLE: bool = OPENCODE_CONFIGURED and check_opencode_available(OPENCODE_URL)

BASE_URL = "http://opencode.test:4096"

PROVIDERS_PAYLOAD = {
    "all": [
        {
            "id": "anthropic",
            "name": "Anthropic",
            "source": "env",
            "env": ["ANTHROPIC_API_KEY"],
            "models": {
                "claude-sonnet-4": {"name": "Claude Sonnet 4", "reasoning": True, "limit": {"context": 200000}},
                "claude-haiku": {"name": "Claude Haiku"},
            },
        },
        {
            "id": "openai",
            "name": "OpenAI",
            "models": {
                "gpt-4o": {"id": "wrong-id", "name": "GPT-4o", "tool_call": True},
            },
        },
    ],
    "default": {"anthropic": "claude-sonnet-4", "openai": "gpt-4o"},
    "connected": ["anthropic"],
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def opencode_url() -> Optional[str]:
    """The live server URL from OPENCODE_TEST_URL, or None if not configured."""
    return OPENCODE_URL


@pytest.fixture
def fake_server() -> FakeServer:
    server = FakeServer()
    server.json("GET", "/global/health", {"healthy": True, "version": "1.2.3"})
    server.json("GET", "/provider", PROVIDERS_PAYLOAD)
    return server


@pytest.fixture
def no_sleep():
    """Injectable sleep that records requested delays without waiting."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)
        await asyncio.sleep(0)

    sleep.delays = delays
    return sleep


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers setup_logging attached so each test starts clean."""
    yield
    logger = logging.getLogger(app_logging.ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    app_logging._recent_handler = None
