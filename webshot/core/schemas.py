"""Data schemas for browser sessions and API responses."""
import base64
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from webshot.core.config import DEFAULT_USER_AGENT, Settings


WaitUntil = Literal["load", "domcontentloaded", "networkidle", "commit"]
ImageType = Literal["png", "jpeg"]
BrowserType = Literal["chromium", "firefox", "webkit"]


class ResourceKind(str, Enum):
    """Kinds of network requests that can be blocked while loading a page."""
    IMAGE = "image"
    STYLESHEET = "stylesheet"
    FONT = "font"


class Viewport(BaseModel):
    """Browser viewport size in CSS pixels."""
    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)


class SessionConfig(BaseModel):
    """
    Immutable configuration of one browser session.

    Supplied when the session is constructed and never changed while it runs.
    """
    model_config = ConfigDict(frozen=True)

    user_agent: str = DEFAULT_USER_AGENT
    viewport: Viewport = Field(default_factory=Viewport)
    navigation_timeout: int = Field(default=30000, gt=0, description="Milliseconds")
    blocked_resource_kinds: FrozenSet[ResourceKind] = frozenset()
    browser_type: BrowserType = "chromium"
    headless: bool = True
    launch_args: List[str] = Field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionConfig":
        """Build the session configuration from application settings."""
        blocked = set()
        if settings.optimize_load:
            if settings.block_images:
                blocked.add(ResourceKind.IMAGE)
            if settings.block_css:
                blocked.add(ResourceKind.STYLESHEET)
            if settings.block_fonts:
                blocked.add(ResourceKind.FONT)

        return cls(
            user_agent=settings.user_agent,
            viewport=Viewport(
                width=settings.viewport_width,
                height=settings.viewport_height
            ),
            navigation_timeout=settings.navigation_timeout,
            blocked_resource_kinds=frozenset(blocked),
            browser_type=settings.browser_type,
            headless=settings.headless,
            launch_args=list(settings.launch_args),
        )


class NavigateOptions(BaseModel):
    """Options controlling when a navigation is considered complete."""
    wait_until: WaitUntil = "networkidle"
    timeout: int = Field(default=30000, gt=0, description="Milliseconds")
    wait_for_network_idle: bool = Field(
        default=False,
        description="Explicitly wait for network idle after the primary wait condition"
    )
    network_idle_timeout: Optional[int] = Field(
        default=None,
        gt=0,
        description="Milliseconds for the extra idle wait, defaults to timeout"
    )
    fail_on_error_status: bool = Field(
        default=True,
        description="Treat a main document status >= 400 as a navigation failure"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NavigateOptions":
        return cls(
            wait_until=settings.wait_until,
            timeout=settings.navigation_timeout,
            wait_for_network_idle=settings.wait_for_network_idle,
            fail_on_error_status=settings.fail_on_error_status,
        )


class CaptureOptions(BaseModel):
    """Options for rendering the current page to an image."""
    full_page: bool = False
    image_type: ImageType = "png"
    quality: Optional[int] = Field(
        default=None,
        ge=0,
        le=100,
        description="JPEG quality, ignored for png"
    )
    timeout: int = Field(default=30000, gt=0, description="Milliseconds")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CaptureOptions":
        return cls(
            full_page=settings.screenshot_full_page,
            image_type=settings.screenshot_type,
            quality=settings.screenshot_quality,
        )


@dataclass
class CaptureResult:
    """Raw screenshot bytes produced by a session."""
    mime_type: str
    image_bytes: bytes

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.image_bytes).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class CaptureResponse(BaseModel):
    """
    Response of the capture endpoint.

    Failures carry no detail and serialize as {"status": false}.
    """
    status: bool
    content: Optional[str] = Field(
        default=None,
        description="Screenshot as a data URI, present only on success"
    )
