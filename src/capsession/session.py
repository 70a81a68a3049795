import logging
from datetime import UTC, datetime, timedelta

from capsession.config import Settings, settings
from capsession.errors import CapabilityNotHeldError
from capsession.handshake import HandshakeOrchestrator, HandshakeResult
from capsession.keys import KeyManager
from capsession.platform import BrowserPlatform, SystemBrowserPlatform
from capsession.resume import DeepLinkResumer
from capsession.storage import KeyValueStorage, build_storage
from capsession.store import CapabilityStore
from capsession.tokens import issue_token
from capsession.types import CapabilityToken, Scope

logger = logging.getLogger("capsession.session")


class Session:
    """The application's single capability session.

    Build one with :meth:`Session.load` at startup and pass it to whatever
    needs to check or request authentication.
    """

    def __init__(
        self,
        *,
        keys: KeyManager,
        store: CapabilityStore,
        orchestrator: HandshakeOrchestrator,
        resumer: DeepLinkResumer,
        config: Settings,
    ) -> None:
        self.keys = keys
        self.store = store
        self.orchestrator = orchestrator
        self.resumer = resumer
        self._config = config

    @classmethod
    async def load(
        cls,
        storage: KeyValueStorage | None = None,
        platform: BrowserPlatform | None = None,
        *,
        config: Settings | None = None,
    ) -> "Session":
        config = config or settings
        if storage is None:
            storage = build_storage(config)
        if platform is None:
            platform = SystemBrowserPlatform()

        keys = KeyManager(storage, storage_key=config.identity_storage_key)
        await keys.load_or_create()
        leeway = config.jwt_leeway_seconds
        store = CapabilityStore(
            storage, keys, tokens_key=config.tokens_storage_key, leeway=leeway
        )
        await store.load()

        orchestrator = HandshakeOrchestrator(
            keys,
            store,
            platform,
            lobby_base_url=config.lobby_base_url,
            return_url=config.app_return_url,
            scope=config.scope,
            leeway=leeway,
        )
        return cls(
            keys=keys,
            store=store,
            orchestrator=orchestrator,
            resumer=DeepLinkResumer(store, platform, leeway=leeway),
            config=config,
        )

    @property
    def identifier(self) -> str:
        return self.keys.identifier

    @property
    def scope(self) -> Scope:
        return self._config.scope

    def is_authenticated(self) -> bool:
        return self.store.has_capability(self.scope)

    async def logout(self) -> None:
        await self.store.reset()

    async def handshake(self) -> HandshakeResult:
        return await self.orchestrator.run()

    async def request_capability(self) -> bool:
        result = await self.handshake()
        return result.authenticated

    async def resume(self) -> bool:
        return await self.resumer.resume()

    async def resume_url(self, url: str | None) -> bool:
        return await self.resumer.resume_url(url)

    def delegate(
        self,
        audience: str,
        scope: Scope | None = None,
        *,
        ttl_minutes: int | None = None,
    ) -> CapabilityToken:
        scope = scope or self.scope
        proof = self.store.find_capability(scope, audience=self.identifier)
        if proof is None:
            raise CapabilityNotHeldError(
                f"No held capability covers {scope.action} on {scope.resource}"
            )

        if ttl_minutes is None:
            ttl_minutes = self._config.delegation_default_ttl_minutes
        expires_at = int((datetime.now(tz=UTC) + timedelta(minutes=ttl_minutes)).timestamp())
        if proof.expires_at is not None:
            expires_at = min(expires_at, proof.expires_at)

        token = issue_token(
            signing_key=self.keys.signing_key,
            audience=audience,
            capabilities=[scope],
            proofs=[proof.encoded],
            expires_at=expires_at,
        )
        logger.info(
            "capability_delegated",
            extra={
                "event_name": "capability_delegated",
                "identifier": self.identifier,
                "audience": audience,
            },
        )
        return token
