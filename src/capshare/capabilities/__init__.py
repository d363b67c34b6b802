"""Delegable capabilities (``view``, ``download``)."""
from __future__ import annotations

from capshare.capabilities.capability import (
    Capability,
    parse_capabilities,
    parse_capability,
    sorted_values,
)

__all__ = [
    "Capability",
    "parse_capabilities",
    "parse_capability",
    "sorted_values",
]
