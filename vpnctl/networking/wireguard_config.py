"""
WireGuard Configuration Rendering

Turns registry state into the text formats consumed by wg-quick and
wg syncconf:

- server config: [Interface] block plus one [Peer] block per enabled peer
- client config: a single peer's [Interface] block plus the server [Peer]
- peer sections: only the [Peer] blocks of any config text, for syncconf

All functions are pure; the firewall capability is passed in rather than
detected here.
"""

from enum import Enum
from typing import TYPE_CHECKING, Iterable, List, Protocol

if TYPE_CHECKING:
    from vpnctl.config import NetworkConfig


CLIENT_ALLOWED_IPS = "0.0.0.0/0"
CLIENT_PERSISTENT_KEEPALIVE = 25

INTERFACE_HEADER = "[Interface]"
PEER_HEADER = "[Peer]"


class RenderablePeer(Protocol):
    public_key: str
    allowed_ip: str


def _nat_rules(nat_interface: str) -> List[str]:
    return [
        "PostUp = iptables -A FORWARD -i %i -j ACCEPT; "
        f"iptables -t nat -A POSTROUTING -o {nat_interface} -j MASQUERADE",
        "PostDown = iptables -D FORWARD -i %i -j ACCEPT; "
        f"iptables -t nat -D POSTROUTING -o {nat_interface} -j MASQUERADE",
    ]


def render_server_config(
    config: "NetworkConfig",
    peers: Iterable[RenderablePeer],
    supports_firewall_rules: bool = False,
) -> str:
    """
    Render the server WireGuard config

    Peer blocks keep the order of `peers`, which callers supply in
    creation order.

    Args:
        config: Network configuration (server keys, address, port)
        peers: Enabled peers with public_key and allowed_ip
        supports_firewall_rules: Whether the host firewall is iptables;
            NAT PostUp/PostDown lines are emitted only when true

    Returns:
        String representation of the wg-quick configuration file
    """
    lines = [
        INTERFACE_HEADER,
        f"PrivateKey = {config.private_key}",
        f"Address = {config.address}",
        f"ListenPort = {config.listen_port}",
    ]

    if config.nat_interface and supports_firewall_rules:
        lines.extend(_nat_rules(config.nat_interface))

    for peer in peers:
        lines.append("")
        lines.append(PEER_HEADER)
        lines.append(f"PublicKey = {peer.public_key}")
        lines.append(f"AllowedIPs = {peer.allowed_ip}")

    return "\n".join(lines) + "\n"


def render_client_config(config: "NetworkConfig", peer) -> str:
    """
    Render the client-side config for a single peer

    The endpoint line is omitted when the server has no public endpoint;
    operators usually fill it in before handing the file out.

    Args:
        config: Network configuration (server public key, endpoint, DNS)
        peer: Peer record with private_key and allowed_ip

    Returns:
        String representation of the client configuration file
    """
    lines = [
        INTERFACE_HEADER,
        f"PrivateKey = {peer.private_key or ''}",
        f"Address = {peer.allowed_ip}",
    ]

    if config.dns:
        lines.append(f"DNS = {config.dns}")

    lines.append("")
    lines.append(PEER_HEADER)
    lines.append(f"PublicKey = {config.public_key}")

    if config.endpoint:
        lines.append(f"Endpoint = {config.endpoint}")

    lines.append(f"AllowedIPs = {CLIENT_ALLOWED_IPS}")
    lines.append(f"PersistentKeepalive = {CLIENT_PERSISTENT_KEEPALIVE}")

    return "\n".join(lines) + "\n"


class _Section(Enum):
    OUTSIDE_PEER = "outside-peer"
    INSIDE_PEER = "inside-peer"


def _next_section(line: str, current: _Section) -> _Section:
    header = line.strip()
    if header.startswith(PEER_HEADER):
        return _Section.INSIDE_PEER
    if header.startswith(INTERFACE_HEADER):
        return _Section.OUTSIDE_PEER
    return current


def extract_peer_sections(config_text: str) -> str:
    """
    Extract only the [Peer] sections of a config, for wg syncconf

    Works on the block structure alone, so hand-edited configs are handled
    the same way as rendered ones. Lines are returned unchanged and in
    their original order.

    Args:
        config_text: Full WireGuard configuration text

    Returns:
        The [Peer] header and body lines joined with newlines
    """
    state = _Section.OUTSIDE_PEER
    result = []

    for line in config_text.split("\n"):
        state = _next_section(line, state)
        if state is _Section.INSIDE_PEER:
            result.append(line)

    return "\n".join(result)
