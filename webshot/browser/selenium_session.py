"""Browser session backed by Selenium WebDriver and Chrome DevTools commands."""
import asyncio
import base64
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Set, Tuple

from selenium import webdriver
from selenium.common.exceptions import InvalidSessionIdException, TimeoutException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.support.ui import WebDriverWait

from webshot.browser.resources import blocked_url_patterns
from webshot.browser.session import BrowserSession
from webshot.core.schemas import CaptureOptions, NavigateOptions, SessionConfig

logger = logging.getLogger(__name__)

READY_STATE_SCRIPT = "return document.readyState"
NAVIGATION_STATUS_SCRIPT = (
    "const entry = performance.getEntriesByType('navigation')[0];"
    "return entry && entry.responseStatus ? entry.responseStatus : null;"
)

# Network idle means no request in flight for NETWORK_IDLE_QUIET_SECONDS,
# tracked from the DevTools events in chromedriver's performance log
PERFORMANCE_LOG = "performance"
REQUEST_STARTED = "Network.requestWillBeSent"
REQUEST_ENDED = ("Network.loadingFinished", "Network.loadingFailed")
NETWORK_IDLE_QUIET_SECONDS = 0.5
NETWORK_IDLE_POLL_SECONDS = 0.1


def network_events(entries: Iterable[Dict[str, Any]]) -> Iterator[Tuple[str, str]]:
    """Yield (method, requestId) for the request lifecycle events in log entries."""
    for entry in entries:
        message = json.loads(entry["message"])["message"]
        method = message.get("method")
        if method == REQUEST_STARTED or method in REQUEST_ENDED:
            yield method, message["params"]["requestId"]


def track_requests(entries: Iterable[Dict[str, Any]], pending: Set[str]) -> bool:
    """Apply request events to the in-flight set. Returns True if any arrived."""
    seen = False
    for method, request_id in network_events(entries):
        seen = True
        if method == REQUEST_STARTED:
            pending.add(request_id)
        else:
            pending.discard(request_id)
    return seen


class SeleniumSession(BrowserSession):
    """
    Drives headless Chrome through Selenium.

    WebDriver calls block, so every one of them runs in a worker thread.
    Resource blocking uses Network.setBlockedURLs, which filters by URL
    pattern rather than by the browser's resource type.
    """

    name = "selenium"

    def __init__(self, config: Optional[SessionConfig] = None):
        super().__init__(config)
        self._driver: Optional[webdriver.Chrome] = None
        # Driver whose browser session died, kept until its service is quit
        self._lost_driver: Optional[webdriver.Chrome] = None

    @property
    def driver(self) -> Optional[webdriver.Chrome]:
        return self._driver

    def _build_options(self) -> Options:
        opts = Options()
        if self.config.headless:
            opts.add_argument("--headless=new")
        opts.add_argument(
            f"--window-size={self.config.viewport.width},{self.config.viewport.height}"
        )
        opts.add_argument(f"--user-agent={self.config.user_agent}")
        for arg in self.config.launch_args:
            opts.add_argument(arg)
        # Readiness beyond DOMContentLoaded is waited for explicitly in _load_page
        opts.page_load_strategy = "eager"
        opts.set_capability("goog:loggingPrefs", {PERFORMANCE_LOG: "ALL"})
        return opts

    async def _call(self, fn: Callable[..., Any], *args) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except InvalidSessionIdException:
            self._handle_disconnect()
            raise

    def _handle_disconnect(self, *args) -> None:
        # chromedriver outlives the browser session and still has to be quit
        self._lost_driver = self._driver or self._lost_driver
        super()._handle_disconnect(*args)

    async def _cdp(self, command: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._call(self._driver.execute_cdp_cmd, command, params or {})

    async def _launch(self) -> None:
        if self.config.browser_type != "chromium":
            raise ValueError(
                f"Unsupported browser type for selenium: {self.config.browser_type}"
            )

        self._driver = await asyncio.to_thread(
            webdriver.Chrome, options=self._build_options()
        )
        await self._cdp("Emulation.setDeviceMetricsOverride", {
            "width": self.config.viewport.width,
            "height": self.config.viewport.height,
            "deviceScaleFactor": 1,
            "mobile": False,
        })

    async def _install_blocking(self) -> None:
        await self._cdp("Network.enable")
        await self._cdp("Network.setBlockedURLs", {
            "urls": blocked_url_patterns(self.config.blocked_resource_kinds)
        })

    async def _remove_blocking(self) -> None:
        if self._driver is None:
            return
        await self._cdp("Network.setBlockedURLs", {"urls": []})

    async def _goto(self, url: str, options: NavigateOptions) -> Optional[int]:
        return await self._call(self._load_page, url, options)

    def _load_page(self, url: str, options: NavigateOptions) -> Optional[int]:
        driver = self._driver
        timeout = options.timeout / 1000
        driver.set_page_load_timeout(timeout)
        # Drop events left over from earlier pages
        driver.get_log(PERFORMANCE_LOG)
        driver.get(url)

        if options.wait_until in ("load", "networkidle"):
            WebDriverWait(driver, timeout).until(
                lambda d: d.execute_script(READY_STATE_SCRIPT) == "complete"
            )
        if options.wait_until == "networkidle":
            self._wait_network_quiet(driver, timeout)

        return driver.execute_script(NAVIGATION_STATUS_SCRIPT)

    def _wait_network_quiet(self, driver: webdriver.Chrome, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        pending: Set[str] = set()
        quiet_since = time.monotonic()

        while True:
            if track_requests(driver.get_log(PERFORMANCE_LOG), pending) or pending:
                quiet_since = time.monotonic()
            elif time.monotonic() - quiet_since >= NETWORK_IDLE_QUIET_SECONDS:
                return
            if time.monotonic() > deadline:
                raise TimeoutException(
                    f"Network did not go idle within {timeout}s "
                    f"({len(pending)} requests in flight)"
                )
            time.sleep(NETWORK_IDLE_POLL_SECONDS)

    async def _wait_for_network_idle(self, timeout: int) -> None:
        await self._call(self._wait_network_quiet, self._driver, timeout / 1000)

    async def _screenshot(self, options: CaptureOptions) -> bytes:
        params: Dict[str, Any] = {
            "format": options.image_type,
            "captureBeyondViewport": options.full_page,
        }
        if options.image_type == "jpeg" and options.quality is not None:
            params["quality"] = options.quality

        if options.full_page:
            metrics = await self._cdp("Page.getLayoutMetrics")
            size = metrics.get("cssContentSize") or metrics["contentSize"]
            params["clip"] = {
                "x": 0,
                "y": 0,
                "width": size["width"],
                "height": size["height"],
                "scale": 1,
            }

        result = await asyncio.wait_for(
            self._cdp("Page.captureScreenshot", params),
            timeout=options.timeout / 1000
        )
        return base64.b64decode(result["data"])

    async def _close(self) -> None:
        driver = self._driver or self._lost_driver
        self._lost_driver = None
        if driver is not None:
            await asyncio.to_thread(driver.quit)
            logger.info("Browser closed successfully.")

    def _clear_handles(self) -> None:
        self._driver = None
