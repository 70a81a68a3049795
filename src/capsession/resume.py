import logging

from capsession.fragments import token_from_url
from capsession.platform import BrowserPlatform
from capsession.store import CapabilityStore
from capsession.types import CapabilityToken

logger = logging.getLogger("capsession.resume")


class DeepLinkResumer:
    """Completes a handshake whose response arrived as the process launch URL."""

    def __init__(
        self,
        store: CapabilityStore,
        platform: BrowserPlatform,
        *,
        leeway: int | None = None,
    ) -> None:
        self._store = store
        self._platform = platform
        self._leeway = leeway
        self._ran = False

    async def _apply(self, url: str | None) -> tuple[CapabilityToken | None, bool]:
        token = token_from_url(url, leeway=self._leeway)
        if token is None:
            return None, False

        added = await self._store.add(token)
        logger.info(
            "deep_link_resumed",
            extra={
                "event_name": "deep_link_resumed",
                "issuer": token.issuer,
                "status": "added" if added else "already_held",
            },
        )
        return token, added

    async def resume(self) -> bool:
        if self._ran:
            return False
        self._ran = True

        token, added = await self._apply(await self._platform.initial_url())
        if token is not None:
            await self._platform.clear_fragment()
        return added

    async def resume_url(self, url: str | None) -> bool:
        _, added = await self._apply(url)
        return added
