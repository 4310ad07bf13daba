from typing import Optional

from opencode_chat.api.client import OpenCodeClient
from opencode_chat.config.config_manager import ConfigManager
from opencode_chat.core.chat import ChatController
from opencode_chat.core.connection import ConnectionService
from opencode_chat.utils.errors import ConfigError
from opencode_chat.utils.logging import get_logger

logger = get_logger(__name__)


class OpenCodeApp:
    """
    Main application class that wires configuration, preferences and clients.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_manager = ConfigManager(config_path) if config_path else ConfigManager()
        self.preferences = self.config_manager.preferences_store()
        self.connection = ConnectionService(self.preferences, client_factory=self.client_for)
        logger.debug("OpenCodeApp initialized")

    @classmethod
    def create(cls, config_path: Optional[str] = None) -> "OpenCodeApp":
        """
        Factory method to create an OpenCodeApp instance.
        """
        return cls(config_path)

    @property
    def base_url(self) -> Optional[str]:
        return self.preferences.load().base_url

    def client_for(self, base_url: str) -> OpenCodeClient:
        """Build a client for ``base_url`` using the configured timeouts and backoff."""
        config = self.config_manager.config
        return OpenCodeClient(
            base_url,
            timeout=config.server.request_timeout,
            connect_timeout=config.server.connect_timeout,
            reconnect_base_ms=config.stream.reconnect_base_ms,
            reconnect_max_ms=config.stream.reconnect_max_ms,
        )

    def create_client(self) -> OpenCodeClient:
        """Client for the saved server.

        Raises:
            ConfigError: no server has been connected yet
        """
        base_url = self.base_url
        if not base_url:
            raise ConfigError(
                "No OpenCode server configured",
                hint="Run `opencode-chat connect http://HOST:4096` first",
            )
        return self.client_for(base_url)

    def create_chat(self, client: OpenCodeClient, session_id: Optional[str] = None, **listeners) -> ChatController:
        return ChatController(client, session_id=session_id, selection=lambda: self.connection.selection, **listeners)
