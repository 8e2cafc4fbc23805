"""
FastAPI application entrypoint

Registers the peer router around an open PeerManager.
"""

from typing import Optional

from fastapi import FastAPI

from vpnctl import __version__
from vpnctl.api.v1.endpoints.peers import router as peers_router, set_peer_manager
from vpnctl.services.peer_manager import PeerManager


def create_app(manager: Optional[PeerManager] = None) -> FastAPI:
    """
    Create the REST API application

    Args:
        manager: Peer manager the endpoints operate on

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="vpnctl",
        description="REST API for WireGuard overlay peer management",
        version=__version__,
    )

    set_peer_manager(manager)
    app.include_router(peers_router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
