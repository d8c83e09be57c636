"""Exceptions raised while turning a URL into a screenshot."""


class WebshotError(Exception):
    """Base class for all service errors."""


class DecodeError(WebshotError):
    """The encoded target URL could not be decoded."""


class SessionError(WebshotError):
    """Base class for browser session failures."""


class LaunchError(SessionError):
    """The browser process or its page could not be created."""


class NavigationError(SessionError):
    """The page did not reach its wait condition (timeout, DNS, TLS, HTTP status)."""


class CaptureError(SessionError):
    """The page could not be rendered to an image."""


class TeardownError(SessionError):
    """Cleanup of a session failed. Logged, never propagated."""


class SessionStateError(SessionError):
    """An operation was called in a state that does not allow it."""
