from capsession.config import Settings, settings
from capsession.errors import (
    CapabilityNotHeldError,
    CapsessionError,
    KeyLoadError,
    StorageFailure,
    TokenDecodeError,
)
from capsession.handshake import (
    HandshakeChannel,
    HandshakeOrchestrator,
    HandshakeResult,
    HandshakeState,
)
from capsession.keys import KeyManager
from capsession.observability.logging import configure_logging
from capsession.platform import BrowserPlatform, SystemBrowserPlatform
from capsession.resume import DeepLinkResumer
from capsession.session import Session
from capsession.storage import FileStorage, KeyValueStorage, MemoryStorage, RedisStorage
from capsession.store import CapabilityStore
from capsession.tokens import decode_token, issue_token
from capsession.types import AuthRequest, BrowserResult, CapabilityToken, Scope

__all__ = [
    "Settings",
    "settings",
    "CapsessionError",
    "StorageFailure",
    "KeyLoadError",
    "TokenDecodeError",
    "CapabilityNotHeldError",
    "KeyManager",
    "CapabilityStore",
    "HandshakeOrchestrator",
    "HandshakeResult",
    "HandshakeState",
    "HandshakeChannel",
    "DeepLinkResumer",
    "Session",
    "KeyValueStorage",
    "MemoryStorage",
    "FileStorage",
    "RedisStorage",
    "BrowserPlatform",
    "SystemBrowserPlatform",
    "Scope",
    "CapabilityToken",
    "AuthRequest",
    "BrowserResult",
    "issue_token",
    "decode_token",
    "configure_logging",
]
