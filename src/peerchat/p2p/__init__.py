from .client import ChatClient
from .config import RuntimeChatConfig, load_runtime_config, runtime_config_from_settings
from .session import TransportSession
from .settings import ChatSettings

__all__ = [
    "ChatClient",
    "ChatSettings",
    "RuntimeChatConfig",
    "TransportSession",
    "load_runtime_config",
    "runtime_config_from_settings",
]
