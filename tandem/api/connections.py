"""
Tandem — Connections API

Thin HTTP surface over the connection state machine.  Every mutating route
maps 1:1 onto a ``ConnectionService`` transition; the service owns the
transaction, so these routes take no request-scoped session.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status

from tandem.api.deps import get_connection_service, get_current_user_id
from tandem.schemas.connection import (
    ConnectionActionResponse,
    ConnectionListResponse,
    RelationshipResponse,
    RequestListResponse,
)
from tandem.services.connection_service import ConnectionService

logger = structlog.get_logger("tandem.api.connections")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# Queries
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=ConnectionListResponse,
    summary="List accepted connections",
)
async def list_connections(
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionListResponse:
    return ConnectionListResponse(connections=await service.list_connections(user_id))


@router.get(
    "/requests",
    response_model=RequestListResponse,
    summary="List incoming pending requests",
)
async def list_incoming_requests(
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> RequestListResponse:
    """Requester ids of pending requests addressed to the caller, newest first."""
    return RequestListResponse(requests=await service.list_incoming_requests(user_id))


@router.get(
    "/outgoing",
    response_model=RequestListResponse,
    summary="List outgoing pending requests",
)
async def list_outgoing_requests(
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> RequestListResponse:
    return RequestListResponse(requests=await service.list_outgoing_requests(user_id))


@router.get(
    "/{other_id}",
    response_model=RelationshipResponse,
    summary="Relationship state with another user",
)
async def get_relationship(
    other_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> RelationshipResponse:
    state = await service.relationship(user_id, other_id)
    return RelationshipResponse(user_id=other_id, state=state)


# ──────────────────────────────────────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{target_id}/request",
    response_model=ConnectionActionResponse,
    summary="Send a connection request",
)
async def request_connection(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionActionResponse:
    """Send a request to ``target_id``.

    If ``target_id`` already asked the caller, the pair is connected
    immediately and the response state is ``accepted``.
    """
    outcome = await service.request(user_id, target_id)
    return ConnectionActionResponse.model_validate(outcome)


@router.post(
    "/{requester_id}/accept",
    response_model=ConnectionActionResponse,
    summary="Accept an incoming request",
)
async def accept_connection(
    requester_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionActionResponse:
    outcome = await service.accept(user_id, requester_id)
    return ConnectionActionResponse.model_validate(outcome)


@router.post(
    "/{requester_id}/decline",
    response_model=ConnectionActionResponse,
    summary="Decline an incoming request",
)
async def decline_connection(
    requester_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionActionResponse:
    outcome = await service.decline(user_id, requester_id)
    return ConnectionActionResponse.model_validate(outcome)


@router.post(
    "/{target_id}/cancel",
    response_model=ConnectionActionResponse,
    summary="Cancel an outgoing request",
)
async def cancel_connection(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> ConnectionActionResponse:
    outcome = await service.cancel(user_id, target_id)
    return ConnectionActionResponse.model_validate(outcome)


@router.delete(
    "/{peer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect from a connected user",
)
async def disconnect(
    peer_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ConnectionService = Depends(get_connection_service),
) -> Response:
    await service.disconnect(user_id, peer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
