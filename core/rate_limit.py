"""
Per-host request spacing shared by every concurrent item pipeline
"""

import asyncio
import time
import logging
from typing import Awaitable, Callable, Dict
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between requests to the same host.

    Holds ``host -> next free slot`` on the monotonic clock. A caller reserves
    its slot before sleeping, so two items racing for the same host are
    spaced out rather than released together. Reservation happens without an
    await in between, which makes it atomic on the event loop.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last_request: Dict[str, float] = {}

    @staticmethod
    def host_of(url: str) -> str:
        return urlsplit(url).netloc or url

    def reserve(self, host: str) -> float:
        """Claim the next slot for host and return how long to wait for it"""
        now = self._clock()
        last = self._last_request.get(host)
        slot = now if last is None else max(now, last + self.min_interval)
        self._last_request[host] = slot
        return slot - now

    async def wait(self, url: str) -> None:
        """Sleep until a request to url's host is allowed"""
        host = self.host_of(url)
        delay = self.reserve(host)
        if delay > 0:
            logger.debug(f"Spacing request to {host} by {delay:.3f}s")
            await self._sleep(delay)
