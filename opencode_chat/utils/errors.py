"""Exception hierarchy for the OpenCode chat client."""


class OpenCodeError(Exception):
    """Base exception for all OpenCode client errors."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None, hint: str | None = None):
        """
        Initialize exception with optional exit code and hint.

        Args:
            message: Error message
            exit_code: Override default exit code
            hint: Helpful hint for resolving the error (uses Python 3.11+ __notes__)
        """
        super().__init__(message)
        if exit_code:
            self.exit_code = exit_code
        if hint:
            if hasattr(self, "add_note"):
                self.add_note(hint)


class ResourceError(OpenCodeError):
    """External resources unavailable (server, network)."""

    exit_code = 75


class ConfigError(OpenCodeError):
    """Configuration-related errors (.env, config.yaml, missing server URL)."""

    exit_code = 78


class HttpError(ResourceError):
    """Server answered with a non-2xx status."""

    def __init__(self, status: int, body: str = "", method: str | None = None, path: str | None = None):
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        target = f" ({method} {path})" if method and path else ""
        message = f"HTTP {status}{target}"
        if body:
            message += f": {body[:200]}"
        hint = None
        if status in (401, 403):
            hint = "The server rejected the request; check that it allows unauthenticated access"
        elif status == 404:
            hint = "The resource does not exist on this server"
        super().__init__(message, hint=hint)


class ConnectionFailedError(ResourceError):
    """Network-level failure talking to the server (refused, timeout, reset)."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        hint = f"Is `opencode serve` reachable at {url}?" if url else None
        super().__init__(message, hint=hint)


class StreamDisconnected(ResourceError):
    """The event stream dropped. Transient: drives reconnection, never fatal."""

    pass


class InvalidConfigurationError(ConfigError):
    """Malformed base URL or other unusable configuration."""

    def __init__(self, message: str, value: str | None = None):
        self.value = value
        hint = "Server URLs look like http://192.168.1.20:4096"
        super().__init__(message, hint=hint)


class UsageError(OpenCodeError):
    """Invalid CLI arguments or options."""

    exit_code = 64
