"""Route handler functions for the capshare HTTP server.

Each handler takes the :class:`~capshare.service.ShareService` it operates
on plus the parsed request data, and returns ``(status_code, response_dict)``.
The HTTP handler in app.py serialises the result.

Status codes: 400 invalid input, 403 not the owner or access denied,
404 unknown object, 409 duplicate upload, 500 storage failure.
"""
from __future__ import annotations

import base64
import binascii

from pydantic import ValidationError

from capshare.delegation.authority import Denied
from capshare.delegation.record import Delegation
from capshare.errors import CapShareError
from capshare.registry.object_registry import ContentObject
from capshare.server.models import (
    AccessResponse,
    DelegationListResponse,
    DelegationResponse,
    DeniedResponse,
    ErrorResponse,
    HealthResponse,
    ObjectResponse,
    ObjectSummaryResponse,
    OwnerObjectsResponse,
    RevokeRequest,
    RevokeResponse,
    ShareRequest,
    ShareResponse,
    UploadRequest,
)
from capshare.service import ShareService

Response = tuple[int, dict[str, object]]


def _error_response(exc: CapShareError) -> Response:
    return exc.http_status, ErrorResponse(error=exc.title, detail=str(exc)).model_dump()


def _validation_response(exc: ValidationError) -> Response:
    return 400, ErrorResponse(error="Validation error", detail=str(exc)).model_dump()


def _missing(detail: str) -> Response:
    return 400, ErrorResponse(error="Invalid request", detail=detail).model_dump()


def _denied_response(denied: Denied) -> Response:
    return 403, DeniedResponse(reason=denied.reason.value).model_dump()


def _object_response(obj: ContentObject, url: str | None) -> ObjectResponse:
    return ObjectResponse(
        id=obj.id,
        owner=obj.owner,
        filename=obj.filename,
        created_at=obj.created_at.isoformat(),
        url=url,
    )


def _delegation_response(delegation: Delegation) -> DelegationResponse:
    return DelegationResponse.model_validate(delegation.to_dict())


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_health(service: ShareService) -> Response:
    """Handle GET /health."""
    return 200, HealthResponse(
        issuer=service.issuer,
        object_count=service.registry.count(),
        delegation_count=service.authority.store.count(),
    ).model_dump()


def handle_upload(service: ShareService, body: dict[str, object]) -> Response:
    """Handle POST /objects."""
    try:
        request = UploadRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_response(exc)
    try:
        content = base64.b64decode(request.content_base64, validate=True)
    except (binascii.Error, ValueError):
        return _missing("content_base64 is not valid base64.")

    try:
        obj = service.upload(content, owner_id=request.owner_id, filename=request.filename)
    except CapShareError as exc:
        return _error_response(exc)
    return 201, _object_response(obj, service.registry.locate(obj.id)).model_dump()


def handle_share(service: ShareService, subject_id: str, body: dict[str, object]) -> Response:
    """Handle POST /objects/{id}/share."""
    try:
        request = ShareRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_response(exc)
    try:
        result = service.share(
            subject_id,
            owner_id=request.owner_id,
            grantee_id=request.grantee_id,
            capabilities=request.capabilities,
            ttl_days=request.ttl_days,
        )
    except CapShareError as exc:
        return _error_response(exc)
    return 201, ShareResponse.model_validate(result.to_dict()).model_dump()


def handle_access(
    service: ShareService,
    subject_id: str,
    proof: str | None,
    action: str | None = None,
) -> Response:
    """Handle GET /objects/{id}?proof=...&action=view."""
    if not proof:
        return _missing("Missing proof.")
    try:
        result = service.access(subject_id, proof, action or "view")
    except CapShareError as exc:
        return _error_response(exc)
    if isinstance(result, Denied):
        return _denied_response(result)
    return 200, AccessResponse.model_validate(result.to_dict()).model_dump()


def handle_download(service: ShareService, subject_id: str, proof: str | None) -> Response:
    """Handle GET /objects/{id}/download?proof=...

    On success the response dict carries the raw ``content`` bytes along
    with ``content_type`` and ``filename``; the HTTP layer streams them
    instead of encoding JSON.
    """
    if not proof:
        return _missing("Missing proof.")
    try:
        result = service.download(subject_id, proof)
    except CapShareError as exc:
        return _error_response(exc)
    if isinstance(result, Denied):
        return _denied_response(result)
    grant, blob = result
    return 200, {
        "filename": grant.filename,
        "content_type": blob.content_type,
        "content": blob.data,
    }


def handle_revoke(service: ShareService, subject_id: str, body: dict[str, object]) -> Response:
    """Handle POST /objects/{id}/revoke."""
    try:
        request = RevokeRequest.model_validate(body)
    except ValidationError as exc:
        return _validation_response(exc)
    try:
        result = service.revoke(subject_id, owner_id=request.owner_id, grantee_id=request.grantee_id)
    except CapShareError as exc:
        return _error_response(exc)
    return 200, RevokeResponse.model_validate(result.to_dict()).model_dump()


def handle_list_by_owner(service: ShareService, owner_id: str) -> Response:
    """Handle GET /owners/{owner}/objects."""
    summaries = service.list_by_owner(owner_id)
    objects = [
        ObjectSummaryResponse(
            **_object_response(s.object, s.retrieval_url).model_dump(),
            shared_with=len(s.active_delegations),
            delegations=[_delegation_response(d) for d in s.active_delegations],
        )
        for s in summaries
    ]
    return 200, OwnerObjectsResponse(owner_id=owner_id, objects=objects).model_dump()


def handle_list_delegations(
    service: ShareService,
    subject_id: str,
    owner_id: str | None,
    include_inactive: bool = False,
) -> Response:
    """Handle GET /objects/{id}/delegations?owner_id=..."""
    if not owner_id:
        return _missing("Missing owner_id.")
    try:
        delegations = service.list_delegations(subject_id, owner_id, include_inactive)
    except CapShareError as exc:
        return _error_response(exc)
    return 200, DelegationListResponse(
        subject_id=subject_id,
        delegations=[_delegation_response(d) for d in delegations],
    ).model_dump()
