"""
Peer Management API Endpoint

FastAPI endpoints over the peer registry.

Provides:
- GET /api/v1/peers - List peers (sanitized)
- POST /api/v1/peers - Add peer, returns the client config
- DELETE /api/v1/peers/{name} - Remove peer
- GET /api/v1/pool/stats - Address usage of the server prefix

The API is meant to be bound to localhost; use SSH tunneling for remote
access.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from vpnctl.errors import (
    AddressSpaceExhaustedError,
    ConflictError,
    PeerNotFoundError,
    VPNError,
)
from vpnctl.schemas.peer import (
    PeerCreateRequest,
    PeerCreateResponse,
    PeerView,
    PoolStats,
    StatusResponse,
)
from vpnctl.services.peer_manager import PeerManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Peers"])


# ============================================================================
# Dependency Injection
# ============================================================================

_peer_manager: Optional[PeerManager] = None


def set_peer_manager(manager: Optional[PeerManager]) -> None:
    """Install the manager the endpoints operate on"""
    global _peer_manager
    _peer_manager = manager


def get_peer_manager() -> PeerManager:
    """
    Get the configured peer manager

    Raises:
        HTTPException: 503 if the app was started without a manager
    """
    if _peer_manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Peer registry not configured"
        )
    return _peer_manager


# ============================================================================
# API Endpoints
# ============================================================================

@router.get(
    "/peers",
    response_model=List[PeerView],
    summary="List peers",
)
def list_peers(
    manager: PeerManager = Depends(get_peer_manager)
) -> List[PeerView]:
    """
    List all peers in creation order

    Private keys are stripped and addresses returned without /32.
    """
    try:
        peers = manager.list_peers()
    except VPNError as e:
        logger.error(f"Error listing peers: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list peers"
        )

    return [PeerView.from_peer(peer) for peer in peers]


@router.post(
    "/peers",
    response_model=PeerCreateResponse,
    status_code=status.HTTP_200_OK,
    summary="Add peer",
    responses={
        409: {"description": "Peer already exists"},
        503: {"description": "Address space exhausted"},
    }
)
def add_peer(
    request: PeerCreateRequest,
    manager: PeerManager = Depends(get_peer_manager)
) -> PeerCreateResponse:
    """
    Add a peer and return its client config

    Errors:
    - 409: Name already taken
    - 503: No free address left in the server prefix
    - 500: Storage or key generation failure
    """
    try:
        peer = manager.add_peer(request.name)

    except ConflictError as e:
        logger.warning(f"Duplicate peer add attempt: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Peer already exists"
        )

    except AddressSpaceExhaustedError as e:
        logger.error(f"Address space exhausted: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    except VPNError as e:
        logger.error(f"Failed to add peer {request.name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save peer"
        )

    return PeerCreateResponse(status="ok", config=manager.client_config(peer))


@router.delete(
    "/peers/{name}",
    response_model=StatusResponse,
    summary="Remove peer",
)
def remove_peer(
    name: str,
    manager: PeerManager = Depends(get_peer_manager)
) -> StatusResponse:
    """Remove a peer by name (404 if absent)"""
    try:
        manager.remove_peer(name)

    except PeerNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Peer not found"
        )

    except VPNError as e:
        logger.error(f"Failed to delete peer {name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete peer"
        )

    return StatusResponse(status="ok")


@router.get(
    "/pool/stats",
    response_model=PoolStats,
    summary="Get address pool statistics",
)
def get_pool_stats(
    manager: PeerManager = Depends(get_peer_manager)
) -> PoolStats:
    try:
        return PoolStats(**manager.pool_stats())
    except VPNError as e:
        logger.error(f"Error getting pool stats: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get pool statistics"
        )
