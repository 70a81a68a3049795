import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from capsession.fragments import build_request_url, matches_return_url, token_from_url
from capsession.keys import KeyManager
from capsession.platform import BrowserPlatform
from capsession.store import CapabilityStore
from capsession.types import AuthRequest, BrowserResult, CapabilityToken, Scope

logger = logging.getLogger("capsession.handshake")


class HandshakeState(str, Enum):
    IDLE = "idle"
    REQUEST_BUILT = "request_built"
    AWAITING_REDIRECT = "awaiting_redirect"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    FALLBACK = "fallback"


class HandshakeChannel(str, Enum):
    PAGE_NAVIGATION = "page_navigation"
    EMBEDDED_SESSION = "embedded_session"
    EXTERNAL_BROWSER = "external_browser"


class HandshakeResult(BaseModel):
    """Outcome of one handshake attempt.

    ``AWAITING_REDIRECT`` is returned by the page-navigation channel, whose
    completion can only arrive through a reload. ``FALLBACK`` means the lobby
    was opened in an external browser and no grant has been seen yet; a later
    deep link has to deliver the token.
    """

    model_config = ConfigDict(frozen=True)

    state: HandshakeState
    channel: HandshakeChannel | None = None
    token: CapabilityToken | None = None

    @property
    def authenticated(self) -> bool:
        return self.state in (HandshakeState.RESOLVED, HandshakeState.FALLBACK)

    @property
    def pending(self) -> bool:
        return self.state in (HandshakeState.AWAITING_REDIRECT, HandshakeState.FALLBACK)


class HandshakeOrchestrator:
    def __init__(
        self,
        keys: KeyManager,
        store: CapabilityStore,
        platform: BrowserPlatform,
        *,
        lobby_base_url: str,
        return_url: str,
        scope: Scope,
        leeway: int | None = None,
    ) -> None:
        self._keys = keys
        self._store = store
        self._platform = platform
        self._lobby_base_url = lobby_base_url
        self._return_url = return_url
        self._scope = scope
        self._leeway = leeway
        self.state = HandshakeState.IDLE

    def _transition(
        self, state: HandshakeState, channel: HandshakeChannel | None = None
    ) -> None:
        self.state = state
        logger.info(
            "handshake_state",
            extra={
                "event_name": "handshake_state",
                "state": state.value,
                "channel": channel.value if channel else None,
            },
        )

    def _finish(
        self,
        state: HandshakeState,
        channel: HandshakeChannel | None,
        token: CapabilityToken | None = None,
    ) -> HandshakeResult:
        self._transition(state, channel)
        return HandshakeResult(state=state, channel=channel, token=token)

    def build_request(self) -> str:
        request = AuthRequest(
            identifier=self._keys.identifier,
            scope=self._scope,
            return_url=self._return_url,
        )
        url = build_request_url(self._lobby_base_url, request)
        self._transition(HandshakeState.REQUEST_BUILT)
        return url

    async def _complete_embedded(self, result: BrowserResult) -> HandshakeResult:
        channel = HandshakeChannel.EMBEDDED_SESSION
        if result.type != "success" or not result.url:
            logger.info(
                "handshake_not_completed",
                extra={"event_name": "handshake_not_completed", "status": result.type},
            )
            return self._finish(HandshakeState.CANCELLED, channel)

        if not matches_return_url(result.url, self._return_url):
            logger.warning(
                "handshake_unexpected_redirect",
                extra={"event_name": "handshake_unexpected_redirect"},
            )
            return self._finish(HandshakeState.CANCELLED, channel)

        token = token_from_url(result.url, leeway=self._leeway)
        if token is None:
            return self._finish(HandshakeState.CANCELLED, channel)

        added = await self._store.add(token)
        if not added and token not in self._store.tokens:
            return self._finish(HandshakeState.CANCELLED, channel)
        return self._finish(HandshakeState.RESOLVED, channel, token)

    async def run(self) -> HandshakeResult:
        self._transition(HandshakeState.IDLE)
        channel: HandshakeChannel | None = None
        try:
            url = self.build_request()

            if self._platform.is_browser_hosted:
                channel = HandshakeChannel.PAGE_NAVIGATION
                self._platform.navigate(url)
                return self._finish(HandshakeState.AWAITING_REDIRECT, channel)

            if await self._platform.embedded_session_available():
                channel = HandshakeChannel.EMBEDDED_SESSION
                self._transition(HandshakeState.AWAITING_REDIRECT, channel)
                result = await self._platform.open_auth_session(url, self._return_url)
                return await self._complete_embedded(result)

            channel = HandshakeChannel.EXTERNAL_BROWSER
            self._transition(HandshakeState.AWAITING_REDIRECT, channel)
            self._platform.open_external(url)
            return self._finish(HandshakeState.FALLBACK, channel)
        except Exception:
            logger.error(
                "handshake_failed",
                extra={
                    "event_name": "handshake_failed",
                    "channel": channel.value if channel else None,
                },
                exc_info=True,
            )
            return self._finish(HandshakeState.CANCELLED, channel)
