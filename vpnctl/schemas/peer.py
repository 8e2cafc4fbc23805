"""
Peer API Schemas

Pydantic models for the peer REST endpoints. PeerView is the sanitized
form handed to callers: no private key, address without the /32 suffix.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vpnctl.models.peer import Peer


class PeerView(BaseModel):
    """Sanitized peer as returned by GET /peers"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Peer name")
    public_key: str = Field(..., alias="publicKey", description="WireGuard public key")
    ip: str = Field(..., description="Allocated address without mask")
    enabled: bool = Field(..., description="Whether the peer is in the server config")
    created: str = Field(..., description="Creation date (YYYY-MM-DD)")

    @classmethod
    def from_peer(cls, peer: Peer) -> "PeerView":
        return cls(
            name=peer.name,
            public_key=peer.public_key,
            ip=peer.ip,
            enabled=bool(peer.enabled),
            created=peer.created_at.strftime("%Y-%m-%d"),
        )


class PeerCreateRequest(BaseModel):
    """Request to add a peer"""
    model_config = ConfigDict(extra='forbid')

    name: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Unique peer name"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate name format (alphanumeric, dots, dashes, underscores)"""
        if not re.match(r'^[a-zA-Z0-9._-]+$', v):
            raise ValueError(
                "name must contain only alphanumeric characters, dots, dashes, and underscores"
            )
        return v


class PeerCreateResponse(BaseModel):
    """Response after adding a peer; carries the client config"""
    status: str = Field("ok", description="Operation status")
    config: str = Field(..., description="Client WireGuard configuration")


class StatusResponse(BaseModel):
    status: str = Field("ok", description="Operation status")


class PoolStats(BaseModel):
    """Address usage of the server prefix"""
    total_addresses: int
    allocated_addresses: int
    available_addresses: int
    utilization_percent: int
