from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from nacl.signing import SigningKey

from capsession.config import Settings
from capsession.fragments import build_response_url, extract_fragment, parse_auth_request
from capsession.storage import MemoryStorage
from capsession.tokens import issue_token
from capsession.types import BrowserResult, CapabilityToken, Scope

LOBBY_URL = "https://lobby.test/auth"
RETURN_URL = "https://app/return"
SCOPE = Scope(resource="did:example:microblog", action="write")


class FakePlatform:
    def __init__(
        self,
        *,
        browser_hosted: bool = False,
        embedded: bool = True,
        respond: Callable[[str, str], BrowserResult] | None = None,
        launch_url: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.is_browser_hosted = browser_hosted
        self.embedded = embedded
        self.respond = respond or (lambda url, return_url: BrowserResult(type="cancel"))
        self.launch_url = launch_url
        self.error = error
        self.navigated: list[str] = []
        self.opened_external: list[str] = []
        self.auth_sessions: list[tuple[str, str]] = []
        self.cleared = 0

    async def initial_url(self) -> str | None:
        return self.launch_url

    async def clear_fragment(self) -> None:
        self.cleared += 1
        if self.launch_url is not None:
            self.launch_url = self.launch_url.partition("#")[0]

    def navigate(self, url: str) -> None:
        self.navigated.append(url)

    async def embedded_session_available(self) -> bool:
        return self.embedded

    async def open_auth_session(self, url: str, return_url: str) -> BrowserResult:
        self.auth_sessions.append((url, return_url))
        if self.error is not None:
            raise self.error
        return self.respond(url, return_url)

    def open_external(self, url: str) -> None:
        self.opened_external.append(url)


@pytest.fixture
def config() -> Settings:
    return Settings(
        storage_backend="memory",
        lobby_base_url=LOBBY_URL,
        app_return_url=RETURN_URL,
        scope_resource=SCOPE.resource,
        scope_action=SCOPE.action,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def lobby_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def issue(lobby_key: SigningKey) -> Callable[..., CapabilityToken]:
    def _issue(
        audience: str,
        scope: Scope = SCOPE,
        *,
        ttl_minutes: int | None = 60,
    ) -> CapabilityToken:
        expires_at = None
        if ttl_minutes is not None:
            expires_at = int((datetime.now(tz=UTC) + timedelta(minutes=ttl_minutes)).timestamp())
        return issue_token(
            signing_key=lobby_key,
            audience=audience,
            capabilities=[scope],
            expires_at=expires_at,
        )

    return _issue


@pytest.fixture
def lobby(
    issue: Callable[..., CapabilityToken],
) -> Callable[[str, str], BrowserResult]:
    """Approves every request: signs a token for the requester and redirects back."""

    def _respond(url: str, return_url: str) -> BrowserResult:
        fragment = extract_fragment(url)
        assert fragment is not None
        request = parse_auth_request(fragment)
        assert request is not None
        token = issue(request.identifier, request.scope)
        return BrowserResult(type="success", url=build_response_url(request.return_url, token))

    return _respond
