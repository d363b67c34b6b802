"""Capabilities that can be delegated over a content object.

Capabilities are independent: holding ``download`` does not imply ``view``.
Each one must be granted explicitly.
"""
from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from capshare.errors import InvalidRequestError


class Capability(str, Enum):
    """A named operation a delegation may permit."""

    VIEW = "view"
    DOWNLOAD = "download"

    def __str__(self) -> str:
        return self.value


def parse_capability(value: str | Capability) -> Capability:
    """Convert a wire string into a :class:`Capability`.

    Parameters
    ----------
    value:
        A capability name such as ``"view"`` (case-insensitive) or an
        existing :class:`Capability` member.

    Returns
    -------
    Capability

    Raises
    ------
    InvalidRequestError
        If *value* does not name a known capability.
    """
    if isinstance(value, Capability):
        return value
    if not isinstance(value, str):
        raise InvalidRequestError(f"Capability must be a string, got {type(value).__name__}.")
    try:
        return Capability(value.strip().lower())
    except ValueError:
        known = ", ".join(c.value for c in Capability)
        raise InvalidRequestError(
            f"Unknown capability {value!r}. Expected one of: {known}."
        ) from None


def parse_capabilities(values: Iterable[str | Capability]) -> frozenset[Capability]:
    """Convert a collection of capability names into a frozenset.

    An empty input yields an empty set; rejecting empty grants is left to
    the capability authority.
    """
    return frozenset(parse_capability(v) for v in values)


def sorted_values(capabilities: Iterable[Capability]) -> list[str]:
    """Return capability names in a stable order for serialisation."""
    return sorted(c.value for c in capabilities)


__all__ = [
    "Capability",
    "parse_capabilities",
    "parse_capability",
    "sorted_values",
]
