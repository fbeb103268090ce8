from aiohttp import (
    AsyncResolver,
    ClientSession,
    ClientTimeout,
    DummyCookieJar,
    TCPConnector,
)
from azure.core.pipeline.transport._aiohttp import AioHttpTransport

from app.helpers.cache import lru_acache
from app.helpers.logging import logger

_CONNECT_TIMEOUT_SEC = 5
_TOTAL_TIMEOUT_SEC = 30


@lru_acache()
async def aiohttp_session() -> ClientSession:
    """
    Shared HTTP session of the process, for the current event loop.
    """
    logger.debug("Opening HTTP session")
    return ClientSession(
        # Mirror the Azure SDK defaults
        auto_decompress=False,
        cookie_jar=DummyCookieJar(),
        trust_env=True,
        connector=TCPConnector(resolver=AsyncResolver()),
        timeout=ClientTimeout(
            connect=_CONNECT_TIMEOUT_SEC,
            total=_TOTAL_TIMEOUT_SEC,
        ),
    )


@lru_acache()
async def azure_transport() -> AioHttpTransport:
    """
    Azure SDK transport over the shared HTTP session.

    Retries are left to the SDK policies.
    """
    return AioHttpTransport(
        session=await aiohttp_session(),
        session_owner=False,  # Session outlives the SDK clients
    )


async def close_aiohttp_sessions() -> None:
    """
    Close the HTTP sessions opened so far, if any.

    Sessions and transports are forgotten, next calls open new ones.
    """
    sessions: list[ClientSession] = aiohttp_session.cache_values()  # pyright: ignore
    for session in sessions:
        if not session.closed:
            await session.close()
    aiohttp_session.cache_clear()  # pyright: ignore
    azure_transport.cache_clear()  # pyright: ignore
    logger.debug("Closed %s HTTP sessions", len(sessions))
