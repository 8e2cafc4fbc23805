"""
Pytest configuration and shared fixtures
"""

import pytest

from vpnctl.config import NetworkConfig
from vpnctl.networking.wireguard_keys import generate_keypair
from vpnctl.services.peer_manager import PeerManager
from vpnctl.services.peer_registry import PeerRegistry


@pytest.fixture(scope="session")
def test_network():
    """Server address and prefix for the overlay"""
    return "10.0.0.1/24"


@pytest.fixture(scope="session")
def server_keys():
    """Server keypair shared by every test config"""
    return generate_keypair()


@pytest.fixture(scope="function")
def data_dir(tmp_path):
    """Empty data directory for config, database and rendered files"""
    return tmp_path / "vpn"


@pytest.fixture(scope="function")
def network_config(data_dir, server_keys, test_network):
    """Network config rooted in the temporary data directory"""
    private_key, public_key = server_keys
    return NetworkConfig(
        interface="wg0",
        listen_port=51820,
        address=test_network,
        endpoint="vpn.example.com:51820",
        private_key=private_key,
        public_key=public_key,
        dns="1.1.1.1",
        data_dir=str(data_dir),
        nat_interface="eth0",
    )


@pytest.fixture(scope="function")
def registry(data_dir):
    """Peer registry backed by a fresh SQLite file"""
    store = PeerRegistry(data_dir)
    yield store
    store.close()


@pytest.fixture(scope="function")
def peer_manager(network_config, registry):
    """Peer manager over the temporary registry, NAT rules enabled"""
    return PeerManager(network_config, registry, supports_firewall_rules=True)
