import asyncio
import logging

from capsession.keys import KeyManager
from capsession.storage import KeyValueStorage
from capsession.tokens import try_decode_token
from capsession.types import CapabilityToken, Scope

logger = logging.getLogger("capsession.store")

TOKEN_DELIMITER = ","


class CapabilityStore:
    """Held capability tokens, indexed in memory and mirrored to one storage slot.

    The persisted slot is rewritten whole on every add. Nothing makes the
    in-memory append and the rewrite atomic, so after a crash between the two
    the next ``load()`` trusts disk.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        keys: KeyManager,
        *,
        tokens_key: str,
        leeway: int | None = None,
    ) -> None:
        self._storage = storage
        self._keys = keys
        self._tokens_key = tokens_key
        self._leeway = leeway
        self._tokens: list[CapabilityToken] = []
        self._add_lock = asyncio.Lock()

    @property
    def tokens(self) -> tuple[CapabilityToken, ...]:
        return tuple(self._tokens)

    async def _stored_encoded(self) -> list[str]:
        stored = await self._storage.load_string(self._tokens_key)
        if not stored:
            return []
        return [item for item in stored.split(TOKEN_DELIMITER) if item]

    async def load(self) -> None:
        tokens: list[CapabilityToken] = []
        for encoded in await self._stored_encoded():
            token = try_decode_token(encoded, leeway=self._leeway)
            if token is None:
                logger.warning(
                    "stored_token_skipped",
                    extra={"event_name": "stored_token_skipped"},
                )
                continue
            tokens.append(token)
        self._tokens = tokens
        logger.info(
            "capability_store_loaded",
            extra={"event_name": "capability_store_loaded", "token_count": len(tokens)},
        )

    def find_capability(
        self, scope: Scope, *, audience: str | None = None
    ) -> CapabilityToken | None:
        for token in self._tokens:
            if audience is not None and token.audience != audience:
                continue
            if token.grants(scope):
                return token
        return None

    def has_capability(self, scope: Scope) -> bool:
        return self.find_capability(scope) is not None

    async def add(self, token: CapabilityToken | str) -> bool:
        encoded = token.encoded if isinstance(token, CapabilityToken) else token
        decoded = try_decode_token(encoded, leeway=self._leeway)
        if decoded is None:
            logger.warning(
                "capability_rejected",
                extra={"event_name": "capability_rejected"},
            )
            return False

        async with self._add_lock:
            if any(held.encoded == decoded.encoded for held in self._tokens):
                return False
            self._tokens.append(decoded)
            await self._storage.save_string(
                self._tokens_key, TOKEN_DELIMITER.join(held.encoded for held in self._tokens)
            )

        logger.info(
            "capability_added",
            extra={
                "event_name": "capability_added",
                "issuer": decoded.issuer,
                "audience": decoded.audience,
                "token_count": len(self._tokens),
            },
        )
        return True

    async def clear(self) -> None:
        await self._storage.clear()

    async def reset(self) -> None:
        await self.clear()
        await self._keys.load_or_create()
        self._tokens = []
        logger.info(
            "capability_store_reset",
            extra={"event_name": "capability_store_reset", "identifier": self._keys.identifier},
        )
