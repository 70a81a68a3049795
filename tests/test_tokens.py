from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from nacl.signing import SigningKey

from capsession.errors import TokenDecodeError
from capsession.keys import did_for
from capsession.tokens import decode_token, issue_token, try_decode_token
from capsession.types import CapabilityToken, Scope
from conftest import SCOPE


def test_issued_token_decodes_to_equivalent_token(
    lobby_key: SigningKey, issue: Callable[..., CapabilityToken]
) -> None:
    audience = did_for(SigningKey.generate())
    token = issue(audience)

    decoded = decode_token(token.encoded)

    assert decoded == token
    assert decoded.issuer == did_for(lobby_key)
    assert decoded.audience == audience
    assert decoded.capabilities == (SCOPE,)
    assert decoded.grants(SCOPE)


def test_tampered_token_is_rejected(issue: Callable[..., CapabilityToken]) -> None:
    token = issue(did_for(SigningKey.generate()))
    header, payload, signature = token.encoded.split(".")
    forged = ".".join([header, payload, signature[::-1]])

    with pytest.raises(TokenDecodeError):
        decode_token(forged)


def test_token_signed_by_other_key_is_rejected(lobby_key: SigningKey) -> None:
    impostor = Ed25519PrivateKey.generate()
    encoded = jwt.encode(
        {
            "iss": did_for(lobby_key),
            "aud": did_for(SigningKey.generate()),
            "att": [{"with": SCOPE.resource, "can": SCOPE.action}],
        },
        impostor,
        algorithm="EdDSA",
    )

    with pytest.raises(TokenDecodeError):
        decode_token(encoded)


def test_expired_token_is_rejected(issue: Callable[..., CapabilityToken]) -> None:
    token = issue(did_for(SigningKey.generate()), ttl_minutes=-60)

    with pytest.raises(TokenDecodeError):
        decode_token(token.encoded)


def test_token_without_capabilities_is_rejected(lobby_key: SigningKey) -> None:
    private_key = Ed25519PrivateKey.from_private_bytes(bytes(lobby_key))
    encoded = jwt.encode(
        {"iss": did_for(lobby_key), "aud": did_for(SigningKey.generate()), "att": []},
        private_key,
        algorithm="EdDSA",
    )

    with pytest.raises(TokenDecodeError):
        decode_token(encoded)


def test_delegated_token_carries_verified_proof(issue: Callable[..., CapabilityToken]) -> None:
    holder = SigningKey.generate()
    proof = issue(did_for(holder))
    expires_at = int((datetime.now(tz=UTC) + timedelta(minutes=5)).timestamp())

    delegated = issue_token(
        signing_key=holder,
        audience=did_for(SigningKey.generate()),
        capabilities=[SCOPE],
        proofs=[proof.encoded],
        expires_at=expires_at,
    )

    decoded = decode_token(delegated.encoded)
    assert decoded.proofs == (proof.encoded,)
    assert decoded.expires_at == expires_at


def test_proof_addressed_to_someone_else_is_rejected(
    issue: Callable[..., CapabilityToken],
) -> None:
    holder = SigningKey.generate()
    proof = issue(did_for(SigningKey.generate()))

    delegated = issue_token(
        signing_key=holder,
        audience=did_for(SigningKey.generate()),
        capabilities=[SCOPE],
        proofs=[proof.encoded],
    )

    with pytest.raises(TokenDecodeError):
        decode_token(delegated.encoded)


def test_wildcard_action_covers_any_action_on_resource() -> None:
    wildcard = Scope(resource=SCOPE.resource, action="*")

    assert wildcard.covers(SCOPE)
    assert not wildcard.covers(Scope(resource="did:example:other", action="write"))
    assert not SCOPE.covers(Scope(resource=SCOPE.resource, action="read"))


def test_try_decode_token_returns_none_for_garbage() -> None:
    assert try_decode_token("not.a.token") is None
    assert try_decode_token("") is None
