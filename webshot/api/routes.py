"""FastAPI route definitions."""
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse

from webshot import __version__
from webshot.browser.orchestrator import CaptureOrchestrator
from webshot.core.errors import CaptureError, DecodeError, LaunchError, NavigationError
from webshot.core.schemas import CaptureResponse
from webshot.core.urls import decode_target_url

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent.parent / "static"

router = APIRouter()


def get_orchestrator(request: Request) -> CaptureOrchestrator:
    """The orchestrator built by the application lifespan."""
    return request.app.state.orchestrator


def _failure(status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=CaptureResponse(status=False).model_dump(exclude_none=True)
    )


@router.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    """Serve the capture page."""
    return HTMLResponse((STATIC_DIR / "index.html").read_text(encoding="utf-8"))


@router.get("/health")
async def health_check(orchestrator: CaptureOrchestrator = Depends(get_orchestrator)):
    """
    Health check endpoint.

    Returns:
        Simple status message including the number of open sessions
    """
    return {
        "status": "healthy",
        "service": "webshot",
        "version": __version__,
        "session_policy": orchestrator.policy,
        "active_sessions": orchestrator.active_sessions
    }


@router.post(
    "/{encoded_url:path}",
    response_model=CaptureResponse,
    response_model_exclude_none=True
)
async def capture_url(
    encoded_url: str,
    orchestrator: CaptureOrchestrator = Depends(get_orchestrator)
):
    """
    Screenshot the page whose URL is base64 encoded in the path.

    This endpoint:
    1. Decodes the URL, prepending http:// when no scheme is given
    2. Loads it in a headless browser session
    3. Returns the screenshot as a data URI

    Failures never carry detail; the body is always {"status": false} and
    the cause is only logged.

    Args:
        encoded_url: Base64 encoded target URL

    Returns:
        CaptureResponse with the image on success
    """
    try:
        url = decode_target_url(encoded_url)
    except DecodeError as e:
        logger.warning(f"Rejected capture request: {e}")
        return _failure(400)

    try:
        result = await orchestrator.capture(url)
    except LaunchError as e:
        logger.error(f"Browser launch failed for {url}: {e}")
        return _failure(503)
    except NavigationError as e:
        logger.warning(f"Navigation failed for {url}: {e}")
        return _failure(502)
    except CaptureError as e:
        logger.error(f"Screenshot failed for {url}: {e}")
        return _failure(500)
    except Exception as e:
        logger.exception(f"Unexpected error capturing {url}: {e}")
        return _failure(500)

    return CaptureResponse(status=True, content=result.to_data_uri())
