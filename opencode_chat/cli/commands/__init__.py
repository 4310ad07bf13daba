from .chat import chat_command, send_command
from .info import config_command, models_command, providers_command, use_command, version_command
from .server import connect_command, disconnect_command, health_command, info_command
from .sessions import sessions_group

__all__ = [
    "chat_command",
    "send_command",
    "models_command",
    "providers_command",
    "use_command",
    "config_command",
    "version_command",
    "connect_command",
    "disconnect_command",
    "health_command",
    "info_command",
    "sessions_group",
]
