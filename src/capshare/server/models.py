"""Pydantic request/response models for the capshare HTTP server."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from capshare import __version__


class UploadRequest(BaseModel):
    """Request body for POST /objects."""

    owner_id: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    content_base64: str


class ObjectResponse(BaseModel):
    """A registered content object."""

    id: str
    owner: str
    filename: str
    created_at: str
    url: Optional[str] = None


class ShareRequest(BaseModel):
    """Request body for POST /objects/{id}/share."""

    owner_id: str = Field(min_length=1)
    grantee_id: str = Field(min_length=1)
    capabilities: list[str] = Field(default_factory=lambda: ["view"])
    ttl_days: Optional[float] = None


class ShareResponse(BaseModel):
    """Response body for a successful share."""

    subject_id: str
    grantee: str
    capabilities: list[str]
    expires_at: str
    proof: str
    share_url: str


class RevokeRequest(BaseModel):
    """Request body for POST /objects/{id}/revoke."""

    owner_id: str = Field(min_length=1)
    grantee_id: str = Field(min_length=1)


class RevokeResponse(BaseModel):
    success: bool
    message: str


class AccessResponse(BaseModel):
    """Response body for a granted view."""

    granted: bool = True
    subject_id: str
    grantee: str
    filename: str
    capability: str
    url: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class DeniedResponse(BaseModel):
    """Response body for a denied access. ``reason`` is the denial reason verbatim."""

    granted: bool = False
    error: str = "Access denied"
    reason: str


class DelegationResponse(BaseModel):
    subject_id: str
    granter: str
    grantee: str
    capabilities: list[str]
    issued_at: str
    expires_at: str
    revoked: bool


class ObjectSummaryResponse(ObjectResponse):
    shared_with: int = 0
    delegations: list[DelegationResponse] = Field(default_factory=list)


class OwnerObjectsResponse(BaseModel):
    owner_id: str
    objects: list[ObjectSummaryResponse] = Field(default_factory=list)


class DelegationListResponse(BaseModel):
    subject_id: str
    delegations: list[DelegationResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    service: str = "capshare"
    version: str = __version__
    issuer: str = ""
    object_count: int = 0
    delegation_count: int = 0


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str = ""


__all__ = [
    "AccessResponse",
    "DelegationListResponse",
    "DelegationResponse",
    "DeniedResponse",
    "ErrorResponse",
    "HealthResponse",
    "ObjectResponse",
    "ObjectSummaryResponse",
    "OwnerObjectsResponse",
    "RevokeRequest",
    "RevokeResponse",
    "ShareRequest",
    "ShareResponse",
    "UploadRequest",
]
