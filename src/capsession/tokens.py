"""Capability token codec.

Tokens are compact JWTs signed with EdDSA by the issuer's ``did:key``. The
claims follow the UCAN layout: ``iss``/``aud`` identifiers, ``att`` as a list
of ``{"with": resource, "can": action}`` pairs and ``prf`` as a list of
encoded parent tokens.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from nacl.signing import SigningKey

from capsession.config import settings
from capsession.errors import TokenDecodeError
from capsession.keys import did_for, public_key_from_did
from capsession.types import CapabilityClaim, CapabilityToken, Scope

logger = logging.getLogger("capsession.tokens")

ALGORITHM = "EdDSA"
TOKEN_HEADERS = {"ucv": "0.8.1"}


def _claim_for(scope: Scope) -> CapabilityClaim:
    return {"with": scope.resource, "can": scope.action}


def _scopes_from_claims(raw: Any) -> tuple[Scope, ...]:
    if not isinstance(raw, list) or not raw:
        raise TokenDecodeError("Token carries no capabilities")
    scopes = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise TokenDecodeError("Capability entry is not an object")
        resource = item.get("with")
        action = item.get("can")
        if not isinstance(resource, str) or not isinstance(action, str):
            raise TokenDecodeError("Capability entry needs string 'with' and 'can'")
        scopes.append(Scope(resource=resource, action=action))
    return tuple(scopes)


def _token_from_claims(encoded: str, claims: Mapping[str, Any]) -> CapabilityToken:
    issuer = claims.get("iss")
    audience = claims.get("aud")
    if not isinstance(issuer, str) or not isinstance(audience, str):
        raise TokenDecodeError("Token issuer and audience must be strings")

    proofs_raw = claims.get("prf", [])
    if not isinstance(proofs_raw, list) or not all(isinstance(p, str) for p in proofs_raw):
        raise TokenDecodeError("Token proofs must be a list of encoded tokens")

    expires_at = claims.get("exp")
    not_before = claims.get("nbf")
    return CapabilityToken(
        encoded=encoded,
        issuer=issuer,
        audience=audience,
        capabilities=_scopes_from_claims(claims.get("att")),
        proofs=tuple(proofs_raw),
        expires_at=int(expires_at) if expires_at is not None else None,
        not_before=int(not_before) if not_before is not None else None,
    )


def issue_token(
    *,
    signing_key: SigningKey,
    audience: str,
    capabilities: Iterable[Scope],
    proofs: Iterable[str] = (),
    expires_at: int | None = None,
    not_before: int | None = None,
) -> CapabilityToken:
    claims: dict[str, Any] = {
        "iss": did_for(signing_key),
        "aud": audience,
        "att": [_claim_for(scope) for scope in capabilities],
        "prf": list(proofs),
    }
    if expires_at is not None:
        claims["exp"] = expires_at
    if not_before is not None:
        claims["nbf"] = not_before

    private_key = Ed25519PrivateKey.from_private_bytes(bytes(signing_key))
    encoded = jwt.encode(claims, private_key, algorithm=ALGORITHM, headers=TOKEN_HEADERS)
    return _token_from_claims(encoded, claims)


def decode_token(encoded: str, *, leeway: int | None = None) -> CapabilityToken:
    """Verify ``encoded`` against its issuer's key and return the decoded token.

    Proofs are decoded the same way and must be addressed to this token's
    issuer. Any failure raises :class:`TokenDecodeError`.
    """
    if leeway is None:
        leeway = settings.jwt_leeway_seconds

    try:
        unverified = jwt.decode(encoded, options={"verify_signature": False})
        issuer = unverified.get("iss")
        if not isinstance(issuer, str):
            raise TokenDecodeError("Token has no issuer")
        public_key = Ed25519PublicKey.from_public_bytes(public_key_from_did(issuer))
        claims = jwt.decode(
            encoded,
            public_key,
            algorithms=[ALGORITHM],
            leeway=leeway,
            options={"verify_aud": False, "require": ["iss", "aud", "att"]},
        )
    except (jwt.InvalidTokenError, ValueError) as exc:
        raise TokenDecodeError(f"Invalid capability token: {exc}") from exc

    token = _token_from_claims(encoded, claims)
    for proof in token.proofs:
        parent = decode_token(proof, leeway=leeway)
        if parent.audience != token.issuer:
            raise TokenDecodeError("Proof is not addressed to the token issuer")
    return token


def try_decode_token(encoded: str, *, leeway: int | None = None) -> CapabilityToken | None:
    try:
        return decode_token(encoded, leeway=leeway)
    except TokenDecodeError:
        logger.info(
            "token_decode_failed",
            extra={"event_name": "token_decode_failed"},
            exc_info=True,
        )
        return None
