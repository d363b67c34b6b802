"""Content object catalog and capability-gated access."""
from __future__ import annotations

from capshare.registry.object_registry import (
    AccessGrant,
    AccessResult,
    ContentObject,
    ObjectRegistry,
    ObjectSummary,
    ShareResult,
)

__all__ = [
    "AccessGrant",
    "AccessResult",
    "ContentObject",
    "ObjectRegistry",
    "ObjectSummary",
    "ShareResult",
]
