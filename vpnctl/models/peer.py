"""
Peer Model

Durable membership record for one overlay peer.

The server keeps each client's private key so client configs can be
regenerated later. Rows written before the private_key column existed read
back with private_key = None.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Text

from vpnctl.db.base import Base

SINGLE_HOST_SUFFIX = "/32"


class Peer(Base):
    """
    Peer entity

    Attributes:
        id: Opaque random identifier (16 hex chars), never reused
        name: Human readable unique name
        public_key: WireGuard public key (base64), unique
        private_key: WireGuard private key (base64), None for legacy rows
        allowed_ip: Allocated address with /32 mask, unique
        enabled: Whether the peer is rendered into the server config
        created_at: Creation timestamp (UTC), defines listing order
    """
    __tablename__ = "peers"

    id = Column(Text, primary_key=True)
    name = Column(Text, unique=True, nullable=False)
    public_key = Column(Text, unique=True, nullable=False)
    private_key = Column(Text, nullable=True)
    allowed_ip = Column(Text, unique=True, nullable=False)
    enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Peer(name={self.name}, allowed_ip={self.allowed_ip}, enabled={self.enabled})>"

    @property
    def ip(self) -> str:
        """Allocated address without the single-host suffix"""
        return strip_host_suffix(self.allowed_ip)


@dataclass(frozen=True)
class EnabledPeer:
    """Projection of an enabled peer used for server config rendering"""
    public_key: str
    allowed_ip: str


def strip_host_suffix(address: str) -> str:
    if address.endswith(SINGLE_HOST_SUFFIX):
        return address[: -len(SINGLE_HOST_SUFFIX)]
    return address


def with_host_suffix(address: str) -> str:
    return f"{strip_host_suffix(address)}{SINGLE_HOST_SUFFIX}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
