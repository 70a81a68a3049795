from typing import Literal, TypedDict

from pydantic import BaseModel, ConfigDict

WILDCARD_ACTION = "*"


CapabilityClaim = TypedDict("CapabilityClaim", {"with": str, "can": str})


class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource: str
    action: str

    def covers(self, requested: "Scope") -> bool:
        if self.resource != requested.resource:
            return False
        return self.action in (requested.action, WILDCARD_ACTION)


class CapabilityToken(BaseModel):
    """A decoded capability token.

    ``encoded`` is the compact form it was decoded from and is what gets
    persisted and forwarded as proof; the remaining fields are read-only views
    of its claims.
    """

    model_config = ConfigDict(frozen=True)

    encoded: str
    issuer: str
    audience: str
    capabilities: tuple[Scope, ...]
    proofs: tuple[str, ...] = ()
    expires_at: int | None = None
    not_before: int | None = None

    def grants(self, scope: Scope) -> bool:
        return any(capability.covers(scope) for capability in self.capabilities)


class AuthRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    scope: Scope
    return_url: str


class BrowserResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["success", "cancel", "dismiss"]
    url: str | None = None
