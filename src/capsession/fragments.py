"""Hash-fragment codec for the lobby redirect protocol.

Outbound: ``<lobby>#did=<identifier>&scope=<json>&redirectTo=<return url>``.
Inbound:  ``<return url>#ucan=<encoded token>``.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, urlencode

import httpx
from pydantic import ValidationError

from capsession.tokens import try_decode_token
from capsession.types import AuthRequest, CapabilityToken, Scope

logger = logging.getLogger("capsession.fragments")

RESPONSE_PARAM = "ucan"


def canonicalize(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def extract_fragment(url: str | None) -> str | None:
    if not url:
        return None
    _, sep, fragment = url.partition("#")
    if not sep or not fragment:
        return None
    return fragment


def strip_fragment(url: str) -> str:
    return str(httpx.URL(url).copy_with(fragment=None))


def matches_return_url(url: str, return_url: str) -> bool:
    try:
        candidate = httpx.URL(url)
        expected = httpx.URL(return_url)
    except httpx.InvalidURL:
        return False
    return (
        candidate.scheme == expected.scheme
        and candidate.host == expected.host
        and candidate.port == expected.port
        and candidate.path.startswith(expected.path)
    )


def encode_auth_request(request: AuthRequest) -> str:
    return urlencode(
        {
            "did": request.identifier,
            "scope": canonicalize(request.scope.model_dump()),
            "redirectTo": request.return_url,
        }
    )


def parse_auth_request(fragment: str) -> AuthRequest | None:
    """Lobby-side view of an outbound request fragment."""
    params = parse_qs(fragment, keep_blank_values=False)
    try:
        scope = Scope.model_validate(json.loads(params["scope"][0]))
        return AuthRequest(
            identifier=params["did"][0],
            scope=scope,
            return_url=params["redirectTo"][0],
        )
    except (KeyError, ValueError, ValidationError):
        return None


def build_request_url(lobby_base_url: str, request: AuthRequest) -> str:
    return f"{lobby_base_url}#{encode_auth_request(request)}"


def encode_auth_response(token: CapabilityToken | str) -> str:
    encoded = token.encoded if isinstance(token, CapabilityToken) else token
    return urlencode({RESPONSE_PARAM: encoded})


def build_response_url(return_url: str, token: CapabilityToken | str) -> str:
    return f"{strip_fragment(return_url)}#{encode_auth_response(token)}"


def parse_auth_response(
    fragment: str | None, *, leeway: int | None = None
) -> CapabilityToken | None:
    """Return the token carried by a lobby response fragment, or None when absent."""
    if not fragment:
        return None
    values = parse_qs(fragment).get(RESPONSE_PARAM)
    if not values:
        logger.info(
            "auth_response_missing_token",
            extra={"event_name": "auth_response_missing_token"},
        )
        return None
    return try_decode_token(values[0], leeway=leeway)


def token_from_url(url: str | None, *, leeway: int | None = None) -> CapabilityToken | None:
    return parse_auth_response(extract_fragment(url), leeway=leeway)
