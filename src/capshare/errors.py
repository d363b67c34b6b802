"""Error hierarchy for capshare.

Hierarchy
---------
::

    CapShareError
    +-- InvalidRequestError   (400)
    |   +-- MalformedProofError
    +-- AuthorizationError    (403)
    +-- NotFoundError         (404)
    +-- DuplicateObjectError  (409)
    +-- StorageError          (500)

Access denials are *not* errors. The capability authority returns them as
:class:`~capshare.delegation.authority.Denied` values so callers branch on
them instead of catching them.
"""
from __future__ import annotations


class CapShareError(Exception):
    """Base class for all capshare errors.

    Attributes
    ----------
    title:
        Short, stable error category used in API responses.
    http_status:
        Recommended HTTP status code for this error.
    """

    title: str = "Internal error"
    http_status: int = 500

    def to_dict(self) -> dict[str, object]:
        """Serialise to the ``{"error", "detail"}`` response shape."""
        return {"error": self.title, "detail": str(self)}


class InvalidRequestError(CapShareError, ValueError):
    """Raised for malformed or missing input, empty capability sets, or bad TTLs."""

    title = "Invalid request"
    http_status = 400


class MalformedProofError(InvalidRequestError):
    """Raised when a delegation proof cannot be decoded or its signature fails."""

    title = "Malformed proof"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed delegation proof: {reason}")


class AuthorizationError(CapShareError):
    """Raised when the caller is not the owner of the object being managed."""

    title = "Forbidden"
    http_status = 403

    def __init__(self, subject_id: str, claimed_owner: str) -> None:
        self.subject_id = subject_id
        self.claimed_owner = claimed_owner
        super().__init__(
            f"{claimed_owner!r} is not the owner of object {subject_id!r}. "
            "Only the owner may share or revoke access."
        )


class NotFoundError(CapShareError, KeyError):
    """Raised when an object, blob or delegation is not known."""

    title = "Not found"
    http_status = 404

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} was not found.")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message.
        return str(self.args[0])


class DuplicateObjectError(CapShareError, ValueError):
    """Raised when registering a content identifier that already exists."""

    title = "Conflict"
    http_status = 409

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__(f"Object {subject_id!r} is already registered.")


class StorageError(CapShareError):
    """Raised by storage backends on transport or capacity failures.

    Not retried by capshare; retry policy belongs to the backend.
    """

    title = "Storage failure"
    http_status = 500


__all__ = [
    "AuthorizationError",
    "CapShareError",
    "DuplicateObjectError",
    "InvalidRequestError",
    "MalformedProofError",
    "NotFoundError",
    "StorageError",
]
