"""
Peer Manager

Binds one loaded NetworkConfig to one PeerRegistry and the renderer, so
front ends (CLI, REST API) deal with a single object.
"""

import logging
from typing import Dict, List, Optional

from vpnctl.config import NetworkConfig, config_data_dir
from vpnctl.models.peer import EnabledPeer, Peer
from vpnctl.networking.wireguard_config import (
    extract_peer_sections,
    render_client_config,
    render_server_config,
)
from vpnctl.services.ip_pool_manager import parse_prefix, pool_stats
from vpnctl.services.peer_registry import PeerRegistry

logger = logging.getLogger(__name__)


class PeerManager:
    """
    Registry operations and config rendering for one network

    Attributes:
        config: Network configuration loaded for this invocation
        registry: Peer store
        supports_firewall_rules: Whether NAT rules may be rendered
    """

    def __init__(
        self,
        config: NetworkConfig,
        registry: Optional[PeerRegistry] = None,
        supports_firewall_rules: bool = False
    ):
        """
        Initialize manager

        Args:
            config: Network configuration
            registry: Open registry; defaults to one in the config's data
                directory (resolved when config.data_dir is empty)
            supports_firewall_rules: Host firewall capability (iptables)
        """
        self.config = config
        self.registry = registry or PeerRegistry(config_data_dir(config))
        self.supports_firewall_rules = supports_firewall_rules

    def add_peer(self, name: str) -> Peer:
        return self.registry.create_peer(name, self.config.address)

    def remove_peer(self, name: str) -> None:
        self.registry.remove_peer(name)

    def get_peer(self, name: str) -> Peer:
        return self.registry.get_peer(name)

    def set_peer_enabled(self, name: str, enabled: bool) -> Peer:
        return self.registry.set_peer_enabled(name, enabled)

    def list_peers(self) -> List[Peer]:
        return self.registry.list_peers()

    def enabled_peers(self) -> List[EnabledPeer]:
        return self.registry.enabled_peers()

    def server_config(self) -> str:
        """Render the server config from currently enabled peers"""
        return render_server_config(
            self.config,
            self.registry.enabled_peers(),
            supports_firewall_rules=self.supports_firewall_rules,
        )

    def peer_sync_config(self) -> str:
        """Render only the [Peer] sections, for wg syncconf"""
        return extract_peer_sections(self.server_config())

    def client_config(self, peer: Peer) -> str:
        """
        Render the client config for a peer

        Peers created before private keys were stored render with an
        empty PrivateKey line.
        """
        if not peer.private_key:
            logger.warning(
                f"Peer {peer.name} has no stored private key; "
                f"client config needs a key filled in by hand"
            )
        return render_client_config(self.config, peer)

    def pool_stats(self) -> Dict[str, int]:
        """Address usage of the server prefix"""
        used = [str(parse_prefix(self.config.address).ip)]
        used.extend(self.registry.used_addresses())
        return pool_stats(self.config.address, used)

    def close(self) -> None:
        self.registry.close()

    def __enter__(self) -> "PeerManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
