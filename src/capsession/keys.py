import base64
import logging

import base58
from nacl.signing import SigningKey, VerifyKey

from capsession.errors import KeyLoadError
from capsession.storage import KeyValueStorage

logger = logging.getLogger("capsession.keys")

DID_KEY_PREFIX = "did:key:"
# multicodec varint for an ed25519 public key
ED25519_MULTICODEC = b"\xed\x01"


def _b64_decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except Exception as exc:
        raise ValueError("Invalid base64 input") from exc


def _b64_encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def export_secret(signing_key: SigningKey) -> str:
    seed32 = bytes(signing_key)
    public32 = bytes(signing_key.verify_key)
    return _b64_encode(seed32 + public32)


def signing_key_from_secret(secret_base64: str) -> SigningKey:
    private_key = _b64_decode(secret_base64)
    if len(private_key) != 64:
        raise ValueError("secret must decode to 64 bytes")
    signing_key = SigningKey(private_key[:32])
    if bytes(signing_key.verify_key) != private_key[32:]:
        raise ValueError("secret public half does not match its seed")
    return signing_key


def did_from_public_key(public32: bytes) -> str:
    encoded = base58.b58encode(ED25519_MULTICODEC + public32).decode("ascii")
    return f"{DID_KEY_PREFIX}z{encoded}"


def public_key_from_did(did: str) -> bytes:
    if not did.startswith(DID_KEY_PREFIX + "z"):
        raise ValueError(f"Unsupported identifier: {did}")
    decoded = base58.b58decode(did[len(DID_KEY_PREFIX) + 1 :])
    if not decoded.startswith(ED25519_MULTICODEC) or len(decoded) != 34:
        raise ValueError(f"Identifier is not an ed25519 did:key: {did}")
    return decoded[len(ED25519_MULTICODEC) :]


def did_for(key: SigningKey | VerifyKey) -> str:
    verify_key = key.verify_key if isinstance(key, SigningKey) else key
    return did_from_public_key(bytes(verify_key))


class KeyManager:
    """Owns the local ed25519 identity and its persisted secret."""

    def __init__(self, storage: KeyValueStorage, *, storage_key: str) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._signing_key: SigningKey | None = None

    async def load_or_create(self) -> SigningKey:
        stored = await self._storage.load_string(self._storage_key)
        if stored:
            try:
                signing_key = signing_key_from_secret(stored)
            except ValueError as exc:
                logger.error(
                    "identity_secret_corrupt",
                    extra={"event_name": "identity_secret_corrupt"},
                )
                raise KeyLoadError("Persisted identity secret is malformed") from exc
            self._signing_key = signing_key
            logger.info(
                "identity_loaded",
                extra={"event_name": "identity_loaded", "identifier": self.identifier},
            )
            return signing_key

        signing_key = SigningKey.generate()
        await self._storage.save_string(self._storage_key, export_secret(signing_key))
        self._signing_key = signing_key
        logger.info(
            "identity_created",
            extra={"event_name": "identity_created", "identifier": self.identifier},
        )
        return signing_key

    @property
    def signing_key(self) -> SigningKey:
        if self._signing_key is None:
            raise RuntimeError("KeyManager.load_or_create() has not completed")
        return self._signing_key

    @property
    def identifier(self) -> str:
        return did_for(self.signing_key)
