import asyncio
from collections.abc import Callable

from capsession.config import Settings
from capsession.fragments import build_response_url
from capsession.keys import KeyManager
from capsession.resume import DeepLinkResumer
from capsession.session import Session
from capsession.storage import MemoryStorage
from capsession.store import CapabilityStore
from capsession.types import CapabilityToken
from conftest import RETURN_URL, SCOPE, FakePlatform


def test_launch_url_token_is_added_once_and_fragment_cleared(
    storage: MemoryStorage, issue: Callable[..., CapabilityToken]
) -> None:
    async def run() -> None:
        keys = KeyManager(storage, storage_key="adxKey")
        await keys.load_or_create()
        store = CapabilityStore(storage, keys, tokens_key="adxUcans")
        await store.load()

        captured = build_response_url(RETURN_URL, issue(keys.identifier))
        platform = FakePlatform(launch_url=captured)
        resumer = DeepLinkResumer(store, platform)

        assert await resumer.resume() is True
        assert store.has_capability(SCOPE) is True
        assert platform.cleared == 1
        assert platform.launch_url == RETURN_URL

        assert await resumer.resume() is False

        # A second resumer fed the same captured URL must not duplicate the grant.
        replay = DeepLinkResumer(store, FakePlatform(launch_url=captured))
        assert await replay.resume() is False
        assert len(store.tokens) == 1
        assert storage.values["adxUcans"].count(",") == 0

    asyncio.run(run())


def test_launch_url_without_fragment_reports_false(
    config: Settings, storage: MemoryStorage
) -> None:
    platform = FakePlatform(launch_url=RETURN_URL)

    async def run() -> None:
        session = await Session.load(storage, platform, config=config)

        assert await session.resume() is False
        assert platform.cleared == 0
        assert session.is_authenticated() is False

    asyncio.run(run())


def test_unparseable_launch_fragment_is_left_alone(
    config: Settings, storage: MemoryStorage
) -> None:
    platform = FakePlatform(launch_url=f"{RETURN_URL}#ucan=garbage")

    async def run() -> None:
        session = await Session.load(storage, platform, config=config)

        assert await session.resume() is False
        assert platform.cleared == 0
        assert session.store.tokens == ()

    asyncio.run(run())


def test_no_launch_url(config: Settings, storage: MemoryStorage) -> None:
    async def run() -> None:
        session = await Session.load(storage, FakePlatform(), config=config)
        assert await session.resume() is False

    asyncio.run(run())


def test_deep_link_after_fallback_completes_grant(
    config: Settings,
    storage: MemoryStorage,
    issue: Callable[..., CapabilityToken],
) -> None:
    platform = FakePlatform(embedded=False)

    async def run() -> None:
        session = await Session.load(storage, platform, config=config)
        assert await session.request_capability() is True
        assert session.is_authenticated() is False

        deep_link = build_response_url(RETURN_URL, issue(session.identifier))

        assert await session.resume_url(deep_link) is True
        assert session.is_authenticated() is True
        assert await session.resume_url(deep_link) is False

    asyncio.run(run())
