"""Headless browser sessions and the factory selecting a backend."""
from typing import Dict, Optional, Type

from webshot.browser.playwright_session import PlaywrightSession
from webshot.browser.selenium_session import SeleniumSession
from webshot.browser.session import BrowserSession, SessionState
from webshot.core.schemas import SessionConfig

SESSION_CLASSES: Dict[str, Type[BrowserSession]] = {
    "playwright": PlaywrightSession,
    "selenium": SeleniumSession,
}


def create_session(
    engine: str = "playwright",
    config: Optional[SessionConfig] = None
) -> BrowserSession:
    """Build an unstarted session for the named automation backend."""
    try:
        session_class = SESSION_CLASSES[engine]
    except KeyError:
        raise ValueError(f"Unsupported browser engine: {engine}") from None
    return session_class(config)


__all__ = [
    "BrowserSession",
    "PlaywrightSession",
    "SeleniumSession",
    "SessionState",
    "create_session",
]
