"""Browser session lifecycle shared by every automation backend."""
import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from webshot.core.errors import (
    CaptureError,
    LaunchError,
    NavigationError,
    SessionStateError,
    TeardownError,
)
from webshot.core.schemas import (
    CaptureOptions,
    CaptureResult,
    NavigateOptions,
    SessionConfig,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a browser session."""
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    NAVIGATING = "navigating"
    CAPTURING = "capturing"
    STOPPING = "stopping"


CLOSED_MARKERS = ("target closed", "page closed", "has been closed")


def is_closed_error(error: BaseException) -> bool:
    """Whether an error only reports that the page or browser is already gone."""
    message = str(error).lower()
    return any(marker in message for marker in CLOSED_MARKERS)


class BrowserSession(ABC):
    """
    One headless browser process with one page.

    The public operations drive the state machine

        idle -> starting -> ready -> navigating -> ready
             -> capturing -> ready -> stopping -> idle

    and delegate the actual work to the backend hooks. The page handle only
    exists between a successful start() and the next stop(); navigate() and
    capture() fail fast outside that window.

    Usage:
        async with PlaywrightSession(config) as session:
            await session.navigate("https://example.com")
            result = await session.capture()
    """

    name = "browser"

    # Extra seconds granted on top of the navigation timeout before the
    # call is abandoned even if the driver never returns
    navigation_grace = 5.0

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()
        self.teardown_errors: List[TeardownError] = []
        self._state = SessionState.IDLE
        self._current_url: Optional[str] = None
        self._blocking_installed = False
        # Set when the browser went away on its own but its driver still runs
        self._needs_release = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_url(self) -> Optional[str]:
        """URL of the last successful navigation, None before any."""
        return self._current_url

    @property
    def is_started(self) -> bool:
        return self._state in (
            SessionState.READY,
            SessionState.NAVIGATING,
            SessionState.CAPTURING,
        )

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """
        Launch the browser, open a page and apply the session config.

        Calling start() on a session that is not idle only logs a warning.

        Raises:
            LaunchError: if the process or page cannot be created. Anything
                created before the failure is torn down first.
        """
        if self._state is not SessionState.IDLE:
            logger.warning(
                f"{self.name} session already started (state={self._state.value})"
            )
            return

        if self._needs_release:
            await self._release_driver()

        self._state = SessionState.STARTING
        self._current_url = None

        try:
            await self._launch()
        except Exception as e:
            logger.error(f"Failed to start {self.name} browser: {e}")
            await self._teardown()
            self._state = SessionState.IDLE
            raise LaunchError(f"Failed to start {self.name} browser: {e}") from e
        except BaseException:
            # Cancelled mid-launch: nothing half-started may survive
            await self._teardown()
            self._state = SessionState.IDLE
            raise

        if self._state is not SessionState.STARTING:
            # Disconnected or stopped while launching
            await self._teardown()
            self._state = SessionState.IDLE
            raise LaunchError(f"{self.name} browser went away during start")

        if self.config.blocked_resource_kinds:
            try:
                await self._install_blocking()
                self._blocking_installed = True
                kinds = ", ".join(sorted(k.value for k in self.config.blocked_resource_kinds))
                logger.info(f"Resource blocking enabled for: {kinds}")
            except Exception as e:
                logger.error(f"Failed to enable resource blocking: {e}")

        self._state = SessionState.READY
        logger.info(
            f"Browser ({self.name}/{self.config.browser_type}) started successfully"
        )

    async def navigate(
        self,
        url: str,
        options: Optional[NavigateOptions] = None
    ) -> Optional[int]:
        """
        Load a URL in the session's page.

        Args:
            url: Absolute URL to load
            options: Wait policy and timeouts, defaults to the session's
                navigation timeout with the network-idle policy

        Returns:
            HTTP status of the main document, or None if unknown

        Raises:
            SessionStateError: if the session is not ready
            NavigationError: if the page does not reach the wait condition in
                time, or fails to load at all
        """
        if options is None:
            options = NavigateOptions(timeout=self.config.navigation_timeout)
        self._require_ready("navigate")
        self._state = SessionState.NAVIGATING

        deadline = options.timeout / 1000 + self.navigation_grace
        if options.wait_for_network_idle:
            deadline += (options.network_idle_timeout or options.timeout) / 1000

        logger.info(
            f"Navigating to {url} (wait_until={options.wait_until}, "
            f"timeout={options.timeout}ms)"
        )
        try:
            status = await asyncio.wait_for(
                self._load(url, options),
                timeout=deadline
            )
        except asyncio.TimeoutError as e:
            raise NavigationError(
                f"Navigation to {url} did not finish within {deadline:.1f}s"
            ) from e
        except NavigationError:
            raise
        except Exception as e:
            raise NavigationError(f"Failed to navigate to {url}: {e}") from e
        finally:
            self._settle(SessionState.NAVIGATING)

        self._current_url = url
        return status

    async def capture(self, options: Optional[CaptureOptions] = None) -> CaptureResult:
        """
        Render the current page to an image.

        Raises:
            CaptureError: if no page is loaded or rasterization fails
        """
        options = options or CaptureOptions()
        if self._state is not SessionState.READY or self._current_url is None:
            raise CaptureError(
                f"Cannot capture: page not loaded (state={self._state.value})"
            )

        self._state = SessionState.CAPTURING
        try:
            image_bytes = await self._screenshot(options)
        except Exception as e:
            logger.error(f"Failed to take screenshot of {self._current_url}: {e}")
            raise CaptureError(f"Failed to take screenshot: {e}") from e
        finally:
            self._settle(SessionState.CAPTURING)

        return CaptureResult(
            mime_type=f"image/{options.image_type}",
            image_bytes=image_bytes
        )

    async def stop(self) -> None:
        """
        Tear the session down. Safe to call any number of times.

        Cleanup is best effort: failures are logged and recorded in
        teardown_errors but never raised. A session that went idle through a
        disconnect still has its driver released here.
        """
        if self._state is SessionState.STOPPING:
            return
        if self._state is SessionState.IDLE:
            if self._needs_release:
                await self._release_driver()
            return

        self._state = SessionState.STOPPING
        logger.info(f"Closing {self.name} browser...")
        try:
            await self._teardown()
        finally:
            self._current_url = None
            self._state = SessionState.IDLE

    async def _load(self, url: str, options: NavigateOptions) -> Optional[int]:
        status = await self._goto(url, options)
        logger.info(
            f"Navigation to {url} finished with status: "
            f"{status if status is not None else 'N/A'}"
        )

        if options.wait_for_network_idle:
            logger.info("Explicitly waiting for network idle...")
            await self._wait_for_network_idle(
                options.network_idle_timeout or options.timeout
            )
            logger.info("Network is idle.")

        if options.fail_on_error_status and status is not None and status >= 400:
            raise NavigationError(f"Navigation to {url} returned HTTP {status}")

        return status

    async def _teardown(self) -> None:
        if self._blocking_installed:
            try:
                await self._remove_blocking()
                logger.info("Resource blocking disabled.")
            except Exception as e:
                if not is_closed_error(e):
                    self._record_teardown_error("disable resource blocking", e)
            finally:
                self._blocking_installed = False

        await self._close_browser("close browser")

    async def _release_driver(self) -> None:
        logger.info(f"Releasing driver of disconnected {self.name} browser...")
        await self._close_browser("release disconnected browser")

    async def _close_browser(self, action: str) -> None:
        self._needs_release = False
        try:
            await self._close()
        except Exception as e:
            self._record_teardown_error(action, e)
        finally:
            self._clear_handles()

    def _record_teardown_error(self, action: str, error: Exception) -> None:
        teardown_error = TeardownError(f"Failed to {action} ({self.name}): {error}")
        teardown_error.__cause__ = error
        self.teardown_errors.append(teardown_error)
        logger.warning(str(teardown_error))

    def _handle_disconnect(self, *args) -> None:
        """Called by backends when the browser process goes away on its own."""
        if self._state in (SessionState.IDLE, SessionState.STOPPING):
            return

        logger.warning(f"{self.name} browser disconnected unexpectedly.")
        self._blocking_installed = False
        self._needs_release = True
        self._clear_handles()
        self._current_url = None
        self._state = SessionState.IDLE

    def _require_ready(self, operation: str) -> None:
        if self._state is not SessionState.READY:
            raise SessionStateError(
                f"Cannot {operation}: session is {self._state.value}, expected ready"
            )

    def _settle(self, from_state: SessionState) -> None:
        # A disconnect during the operation already moved us to idle
        if self._state is from_state:
            self._state = SessionState.READY

    # Backend hooks

    @abstractmethod
    async def _launch(self) -> None:
        """Spawn the browser and open a page with user agent and viewport."""

    @abstractmethod
    async def _install_blocking(self) -> None:
        """Abort requests whose kind is in config.blocked_resource_kinds."""

    @abstractmethod
    async def _remove_blocking(self) -> None:
        """Remove the request filter installed by _install_blocking."""

    @abstractmethod
    async def _goto(self, url: str, options: NavigateOptions) -> Optional[int]:
        """Load url and return the main document status if known."""

    @abstractmethod
    async def _wait_for_network_idle(self, timeout: int) -> None:
        """Wait (timeout in ms) until the page has no network activity."""

    @abstractmethod
    async def _screenshot(self, options: CaptureOptions) -> bytes:
        """Return the rendered page as image bytes."""

    @abstractmethod
    async def _close(self) -> None:
        """Close page and browser, and release the driver even if the browser is gone."""

    @abstractmethod
    def _clear_handles(self) -> None:
        """Forget page and browser handles."""
