"""Classification of outgoing requests for resource blocking."""
from typing import AbstractSet, Dict, List, Optional, Tuple

from webshot.core.schemas import ResourceKind


# Resource type names reported by the browser for each blockable kind
RESOURCE_TYPES: Dict[str, ResourceKind] = {
    "image": ResourceKind.IMAGE,
    "imageset": ResourceKind.IMAGE,
    "stylesheet": ResourceKind.STYLESHEET,
    "font": ResourceKind.FONT,
}

# URL patterns for engines that can only filter by URL
URL_PATTERNS: Dict[ResourceKind, Tuple[str, ...]] = {
    ResourceKind.IMAGE: (
        "*.png", "*.jpg", "*.jpeg", "*.gif", "*.webp",
        "*.avif", "*.svg", "*.ico", "*.bmp",
    ),
    ResourceKind.STYLESHEET: ("*.css",),
    ResourceKind.FONT: ("*.woff", "*.woff2", "*.ttf", "*.otf", "*.eot"),
}


def classify(resource_type: str) -> Optional[ResourceKind]:
    """Map a browser resource type to a blockable kind, or None."""
    return RESOURCE_TYPES.get(resource_type.lower())


def should_block(resource_type: str, blocked: AbstractSet[ResourceKind]) -> bool:
    """Return True if a request of this type must be aborted."""
    kind = classify(resource_type)
    return kind is not None and kind in blocked


def blocked_url_patterns(blocked: AbstractSet[ResourceKind]) -> List[str]:
    """URL patterns covering every blocked kind, in a stable order."""
    patterns: List[str] = []
    for kind in ResourceKind:
        if kind in blocked:
            patterns.extend(URL_PATTERNS[kind])
    return patterns
