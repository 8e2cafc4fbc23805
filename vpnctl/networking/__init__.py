"""
WireGuard Networking Package

Key generation and configuration rendering for overlay peers.
"""

from vpnctl.networking.wireguard_keys import (
    WireGuardKeyError,
    generate_keypair,
    generate_id,
    get_public_key_from_private,
)

from vpnctl.networking.wireguard_config import (
    render_server_config,
    render_client_config,
    extract_peer_sections,
)

__all__ = [
    "WireGuardKeyError",
    "generate_keypair",
    "generate_id",
    "get_public_key_from_private",
    "render_server_config",
    "render_client_config",
    "extract_peer_sections",
]
