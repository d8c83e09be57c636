"""Browser session backed by Playwright."""
import logging
from typing import Optional

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    Request,
    Route,
    async_playwright,
)

from webshot.browser.resources import should_block
from webshot.browser.session import BrowserSession, is_closed_error
from webshot.core.schemas import CaptureOptions, NavigateOptions, SessionConfig

logger = logging.getLogger(__name__)


class PlaywrightSession(BrowserSession):
    """Drives chromium, firefox or webkit through playwright.async_api."""

    name = "playwright"

    def __init__(self, config: Optional[SessionConfig] = None):
        super().__init__(config)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        # page.unroute needs the exact handler object passed to page.route
        self._route_handler = self._route_request

    @property
    def page(self) -> Optional[Page]:
        """Direct access to the Playwright page for advanced use."""
        return self._page

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    async def _launch(self) -> None:
        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.config.browser_type)

        self._browser = await launcher.launch(
            headless=self.config.headless,
            args=self.config.launch_args
        )
        self._browser.on("disconnected", self._handle_disconnect)

        self._page = await self._browser.new_page(
            user_agent=self.config.user_agent,
            viewport={
                "width": self.config.viewport.width,
                "height": self.config.viewport.height,
            }
        )

    async def _install_blocking(self) -> None:
        await self._page.route("**/*", self._route_handler)

    async def _remove_blocking(self) -> None:
        if self._page is None or self._page.is_closed():
            return
        await self._page.unroute("**/*", self._route_handler)

    async def _route_request(self, route: Route, request: Request) -> None:
        """Abort requests of blocked kinds and let everything else through."""
        try:
            if should_block(request.resource_type, self.config.blocked_resource_kinds):
                await route.abort()
            else:
                await route.continue_()
        except PlaywrightError as e:
            # The page may be closing while the request is in flight
            if not is_closed_error(e):
                logger.warning(f"Error processing request {request.url}: {e}")

    async def _goto(self, url: str, options: NavigateOptions) -> Optional[int]:
        response = await self._page.goto(
            url,
            wait_until=options.wait_until,
            timeout=options.timeout
        )
        return response.status if response is not None else None

    async def _wait_for_network_idle(self, timeout: int) -> None:
        await self._page.wait_for_load_state("networkidle", timeout=timeout)

    async def _screenshot(self, options: CaptureOptions) -> bytes:
        kwargs = {
            "full_page": options.full_page,
            "type": options.image_type,
            "timeout": options.timeout,
        }
        if options.image_type == "jpeg" and options.quality is not None:
            kwargs["quality"] = options.quality
        return await self._page.screenshot(**kwargs)

    async def _close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
                logger.info("Browser closed successfully.")
        finally:
            await self._stop_driver()

    async def _stop_driver(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await playwright.stop()

    def _clear_handles(self) -> None:
        self._browser = None
        self._page = None
