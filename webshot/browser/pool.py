"""Pool of started browser sessions handed out one request at a time."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

from webshot.browser.session import BrowserSession
from webshot.core.errors import SessionStateError

logger = logging.getLogger(__name__)


class SessionPool:
    """
    Fixed-size pool of browser sessions.

    Design notes:
    - A session is checked out by exactly one request at a time, so no two
      navigations ever share a page
    - Sessions are created and started lazily, up to `size`
    - A session that fell back to idle (browser disconnected, failed start)
      is restarted on its next checkout
    """

    def __init__(self, factory: Callable[[], BrowserSession], size: int = 2):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self._factory = factory
        self._size = size
        self._sessions: List[BrowserSession] = []
        self._available: Optional[asyncio.Queue] = None
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def in_use(self) -> int:
        """Number of sessions currently checked out."""
        available = self._available.qsize() if self._available is not None else 0
        return len(self._sessions) - available

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        """Check out a started session for the duration of the block."""
        session = await self.acquire()
        try:
            yield session
        finally:
            await self.release(session)

    async def acquire(self) -> BrowserSession:
        """
        Wait for a free session and make sure it is started.

        Raises:
            SessionStateError: if the pool has been closed
            LaunchError: if the session cannot be (re)started
        """
        if self._closed:
            raise SessionStateError("Session pool is closed")
        if self._available is None:
            self._available = asyncio.Queue()

        if self._available.empty() and len(self._sessions) < self._size:
            session = self._factory()
            self._sessions.append(session)
            logger.info(f"Created pooled session {len(self._sessions)}/{self._size}")
        else:
            session = await self._available.get()

        if not session.is_started:
            try:
                await session.start()
            except BaseException:
                # Cancellation included
                await self.release(session)
                raise
        return session

    async def release(self, session: BrowserSession) -> None:
        """Return a session to the pool, or stop it if the pool is closed."""
        if self._closed:
            await session.stop()
            return
        self._available.put_nowait(session)

    async def close(self) -> None:
        """Stop every session. Checked-out sessions are stopped on release."""
        if self._closed:
            return
        self._closed = True
        while self._available is not None and not self._available.empty():
            await self._available.get_nowait().stop()
        logger.info(f"Session pool closed ({len(self._sessions)} sessions)")
