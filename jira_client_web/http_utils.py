"""HTTP helpers tying outbound calls to the inbound request's lifetime."""
import asyncio
import logging
from typing import Awaitable, TypeVar

from starlette.requests import Request

from jira_client_web.errors import ClientDisconnectedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _wait_for_disconnect(request: Request) -> None:
    # Same approach as Starlette's streaming responses: block on receive() until the server
    # reports http.disconnect. Any body message ahead of it is skipped.
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def run_until_disconnected(request: Request, awaitable: Awaitable[T]) -> T:
    """
    Await an outbound call, cancelling it if the browser disconnects first.
    The call's own timeout still applies; this only adds cancellation.
    Exceptions from the call propagate unchanged.
    """
    call = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({call, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (call, watcher):
            if not task.done():
                task.cancel()
        await asyncio.gather(call, watcher, return_exceptions=True)

    if call.cancelled():
        logger.info("Client disconnected from %s; outbound call cancelled", request.url.path)
        raise ClientDisconnectedError(request.url.path)
    return call.result()
