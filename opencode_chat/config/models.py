from typing import Any, Optional

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    base_url: Optional[str] = None
    setup_complete: bool = False
    request_timeout: float = 30.0
    connect_timeout: float = 15.0


class SelectionConfig(BaseModel):
    provider_id: Optional[str] = None
    model_id: Optional[str] = None


class StreamConfig(BaseModel):
    enabled: bool = True
    reconnect_base_ms: int = 1000
    reconnect_max_ms: int = 30000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None
    recent_entries: int = 200


class AppConfig(BaseModel):
    version: str = "1.0"
    server: ServerConfig = Field(default_factory=ServerConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_dot_notation(self, key: str, default: Any = None) -> Any:
        """Get value using dot notation from the config model"""
        parts = key.split(".")
        current = self
        for part in parts:
            if hasattr(current, part):
                current = getattr(current, part)
            elif isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current


class Preferences(BaseModel):
    """Persisted client state: where the server is and what was last selected."""

    base_url: Optional[str] = None
    setup_complete: bool = False
    last_provider: Optional[str] = None
    last_model: Optional[str] = None
