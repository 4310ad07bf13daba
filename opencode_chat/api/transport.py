"""HTTP request/response helpers for the OpenCode REST API."""

import json
from typing import Any, Dict, Optional

import httpx

from opencode_chat.utils.errors import ConnectionFailedError, HttpError, InvalidConfigurationError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


def validate_base_url(url: Optional[str]) -> str:
    """Return ``url`` without trailing slashes, or raise if it is unusable.

    Raises:
        InvalidConfigurationError: not an absolute http(s) URL with a host.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidConfigurationError("Server URL is empty", value=url)
    candidate = url.strip().rstrip("/")
    try:
        parsed = httpx.URL(candidate)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise InvalidConfigurationError(f"Invalid server URL '{url}': {e}", value=url) from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidConfigurationError(
            f"Invalid server URL '{url}': must start with http:// or https://", value=url
        )
    return candidate


def parse_json_body(raw: str) -> Any:
    """Parse a response body; empty or non-JSON bodies become ``{}``."""
    if not raw or not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug(f"Response body is not JSON, treating as empty: {raw[:100]!r}")
        return {}


class HttpTransport:
    """Issues one HTTP request per call against ``base_url + path``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = validate_base_url(base_url)
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, url: str) -> None:
        self._base_url = validate_base_url(url)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = self._url(path)
        logger.debug(f"{method} {url}")
        try:
            response = await self._client.request(method, url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"OpenCode request failed: {method} {path} -> {e!r}")
            raise ConnectionFailedError(f"{method} {path} failed: {e}", url=self._base_url) from e

        raw = response.text
        # 204 from DELETE is a 2xx as well, so it passes here with an empty body
        if not response.is_success:
            logger.error(f"OpenCode API error: {method} {path} -> {response.status_code} {raw[:500]}")
            raise HttpError(response.status_code, raw, method=method, path=path)
        return parse_json_body(raw)

    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("POST", path, body if body is not None else {})

    async def delete(self, path: str) -> Any:
        return await self._request("DELETE", path)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
