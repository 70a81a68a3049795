import logging
import sys
import webbrowser
from typing import Protocol

from capsession.fragments import strip_fragment
from capsession.types import BrowserResult

logger = logging.getLogger("capsession.platform")


class BrowserPlatform(Protocol):
    """Browser and deep-link primitives the handshake runs on."""

    @property
    def is_browser_hosted(self) -> bool: ...

    async def initial_url(self) -> str | None: ...

    async def clear_fragment(self) -> None: ...

    def navigate(self, url: str) -> None: ...

    async def embedded_session_available(self) -> bool: ...

    async def open_auth_session(self, url: str, return_url: str) -> BrowserResult: ...

    def open_external(self, url: str) -> None: ...


class SystemBrowserPlatform:
    """Desktop platform: no embedded session, hands the lobby URL to the system browser.

    The launch URL is whatever deep link the process was started with, by
    default the first command-line argument carrying a ``#`` fragment.
    """

    is_browser_hosted = False

    def __init__(self, launch_url: str | None = None) -> None:
        if launch_url is None:
            launch_url = next((arg for arg in sys.argv[1:] if "#" in arg), None)
        self._launch_url = launch_url

    async def initial_url(self) -> str | None:
        return self._launch_url

    async def clear_fragment(self) -> None:
        if self._launch_url is not None:
            self._launch_url = strip_fragment(self._launch_url)

    def navigate(self, url: str) -> None:
        raise RuntimeError("SystemBrowserPlatform is not browser hosted")

    async def embedded_session_available(self) -> bool:
        return False

    async def open_auth_session(self, url: str, return_url: str) -> BrowserResult:
        raise RuntimeError("SystemBrowserPlatform has no embedded browser session")

    def open_external(self, url: str) -> None:
        opened = webbrowser.open(url, new=2)
        if not opened:
            logger.warning(
                "system_browser_unavailable",
                extra={"event_name": "system_browser_unavailable"},
            )
