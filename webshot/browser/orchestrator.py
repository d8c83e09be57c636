"""Runs one capture through the browser session lifecycle."""
import logging
from functools import partial
from typing import Callable, Optional

from webshot.browser import create_session
from webshot.browser.pool import SessionPool
from webshot.browser.session import BrowserSession
from webshot.core.config import Settings
from webshot.core.schemas import (
    CaptureOptions,
    CaptureResult,
    NavigateOptions,
    SessionConfig,
)

logger = logging.getLogger(__name__)


class CaptureOrchestrator:
    """
    Turns a target URL into a screenshot.

    Two lifecycle policies:
    - "per_request": every capture starts and stops its own session
    - "pool": sessions come from a SessionPool, one per in-flight capture
    """

    def __init__(
        self,
        session_factory: Callable[[], BrowserSession],
        navigate_options: Optional[NavigateOptions] = None,
        capture_options: Optional[CaptureOptions] = None,
        policy: str = "per_request",
        pool_size: int = 2
    ):
        if policy not in ("per_request", "pool"):
            raise ValueError(f"Unknown session policy: {policy}")
        self.session_factory = session_factory
        self.navigate_options = navigate_options or NavigateOptions()
        self.capture_options = capture_options or CaptureOptions()
        self.policy = policy
        self.pool = SessionPool(session_factory, pool_size) if policy == "pool" else None
        self._active = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CaptureOrchestrator":
        session_config = SessionConfig.from_settings(settings)
        return cls(
            session_factory=partial(create_session, settings.browser_engine, session_config),
            navigate_options=NavigateOptions.from_settings(settings),
            capture_options=CaptureOptions.from_settings(settings),
            policy=settings.session_policy,
            pool_size=settings.pool_size,
        )

    @property
    def active_sessions(self) -> int:
        """Number of sessions currently held by a capture."""
        return self._active

    async def capture(self, url: str) -> CaptureResult:
        """
        Load url and take its screenshot.

        Args:
            url: Absolute URL, already decoded and normalized

        Returns:
            CaptureResult with the image bytes

        Raises:
            SessionError: LaunchError, NavigationError or CaptureError from
                the session; the session is always released or stopped
        """
        self._active += 1
        try:
            if self.pool is not None:
                async with self.pool.session() as session:
                    result = await self._run(session, url)
            else:
                async with self.session_factory() as session:
                    result = await self._run(session, url)
        finally:
            self._active -= 1

        logger.info(
            f"Captured {url} ({result.mime_type}, {len(result.image_bytes)} bytes)"
        )
        return result

    async def _run(self, session: BrowserSession, url: str) -> CaptureResult:
        await session.navigate(url, self.navigate_options)
        return await session.capture(self.capture_options)

    async def close(self) -> None:
        """Release pooled sessions. Nothing to do for per-request sessions."""
        if self.pool is not None:
            await self.pool.close()
