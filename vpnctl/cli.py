"""
vpn - Simple WireGuard VPN Controller

Command line front end over the peer registry, the config renderer and the
wg-quick / wg syncconf launcher.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from vpnctl import __version__
from vpnctl.config import (
    DEFAULT_ADDRESS,
    DEFAULT_DNS,
    DEFAULT_INTERFACE,
    DEFAULT_LISTEN_PORT,
    DEFAULT_NAT_INTERFACE,
    NetworkConfig,
    config_data_dir,
    config_path,
    data_dir,
    load_config,
    save_config,
)
from vpnctl.errors import (
    ConfigNotFoundError,
    PeerExistsError,
    PeerNotFoundError,
    TunnelCommandError,
    VPNError,
)
from vpnctl.networking.wireguard_keys import generate_keypair
from vpnctl.services.peer_manager import PeerManager
from vpnctl.services.peer_registry import PeerRegistry
from vpnctl.services.wireguard_config_manager import (
    WireGuardConfigManager,
    supports_firewall_rules,
)

logger = logging.getLogger(__name__)

DEFAULT_WEB_PORT = 8080


def _directory(args) -> Path:
    return Path(args.data_dir) if args.data_dir else data_dir()


def _open_manager(args) -> PeerManager:
    config = load_config(_directory(args))
    registry = PeerRegistry(config_data_dir(config))
    return PeerManager(
        config,
        registry,
        supports_firewall_rules=supports_firewall_rules(),
    )


# ---------------------------------------------------
# init
# ---------------------------------------------------

def cmd_init(args) -> None:
    directory = _directory(args)
    path = config_path(directory)
    if path.exists():
        raise VPNError(f"Already initialized. Config exists at: {path}")

    private_key, public_key = generate_keypair()

    endpoint = args.endpoint
    if endpoint is None:
        endpoint = input("Enter public endpoint (e.g., vpn.example.com or IP): ").strip()

    config = NetworkConfig(
        interface=DEFAULT_INTERFACE,
        listen_port=args.port,
        address=DEFAULT_ADDRESS,
        endpoint=f"{endpoint}:{args.port}" if endpoint else "",
        private_key=private_key,
        public_key=public_key,
        dns=DEFAULT_DNS,
        data_dir=str(directory),
        nat_interface=DEFAULT_NAT_INTERFACE,
    )
    path = save_config(config)

    PeerRegistry(directory).close()

    print("\nVPN initialized.")
    print(f"  Config: {path}")
    print(f"  Server Public Key: {public_key}")
    print("\nNext steps:")
    print("  1. Run 'vpn up' to start the VPN")
    print("  2. Run 'vpn add <name>' to add peers")


# ---------------------------------------------------
# up / down / sync
# ---------------------------------------------------

def cmd_up(args) -> None:
    with _open_manager(args) as manager:
        launcher = WireGuardConfigManager(manager.config)
        launcher.up(manager.server_config())
    print("VPN is up")


def cmd_down(args) -> None:
    config = load_config(_directory(args))
    try:
        WireGuardConfigManager(config).down()
    except TunnelCommandError as e:
        print(f"Warning: {e}")
    print("VPN is down")


def cmd_sync(args) -> None:
    with _open_manager(args) as manager:
        launcher = WireGuardConfigManager(manager.config)
        launcher.sync(manager.server_config(), manager.peer_sync_config())
    print("Synced peers to WireGuard")


# ---------------------------------------------------
# peers
# ---------------------------------------------------

def cmd_add(args) -> None:
    with _open_manager(args) as manager:
        peer = manager.add_peer(args.name)
        client_config = manager.client_config(peer)

    print(f"Added peer: {peer.name}")
    print(f"  IP: {peer.allowed_ip}")
    print("\nClient config:")
    print("-" * 40)
    print(client_config)
    print("Run 'vpn sync' to apply changes to running VPN.")


def cmd_remove(args) -> None:
    with _open_manager(args) as manager:
        manager.remove_peer(args.name)

    print(f"Removed peer: {args.name}")
    print("Run 'vpn sync' to apply changes to running VPN.")


def cmd_list(args) -> None:
    with _open_manager(args) as manager:
        peers = manager.list_peers()
        stats = manager.pool_stats()

    print(f"{'NAME':<20} {'IP':<15} {'STATUS':<10} CREATED")
    print("-" * 60)

    for peer in peers:
        state = "enabled" if peer.enabled else "disabled"
        created = peer.created_at.strftime("%Y-%m-%d")
        print(f"{peer.name:<20} {peer.ip:<15} {state:<10} {created}")

    print(
        f"\n{stats['allocated_addresses']} of {stats['total_addresses']} "
        f"addresses allocated"
    )


def cmd_show(args) -> None:
    with _open_manager(args) as manager:
        peer = manager.get_peer(args.name)
        print(manager.client_config(peer), end="")


def cmd_enable(args) -> None:
    with _open_manager(args) as manager:
        manager.set_peer_enabled(args.name, True)
    print(f"Enabled peer: {args.name}")
    print("Run 'vpn sync' to apply changes to running VPN.")


def cmd_disable(args) -> None:
    with _open_manager(args) as manager:
        manager.set_peer_enabled(args.name, False)
    print(f"Disabled peer: {args.name}")
    print("Run 'vpn sync' to apply changes to running VPN.")


# ---------------------------------------------------
# web
# ---------------------------------------------------

def cmd_web(args) -> None:
    import uvicorn

    from vpnctl.main import create_app

    with _open_manager(args) as manager:
        print(f"REST API running at http://localhost:{args.port}")
        print("API is bound to localhost; use SSH tunneling for remote access.")
        print("Press Ctrl+C to stop")
        uvicorn.run(create_app(manager), host="127.0.0.1", port=args.port)


# ---------------------------------------------------
# Parser
# ---------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vpn",
        description="vpn - Simple WireGuard VPN Controller",
    )
    parser.add_argument("--data-dir", help="Data directory (default: $VPN_DATA_DIR or ~/.vpn)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_init = sub.add_parser("init", help="Initialize VPN server (generate keys, create config)")
    p_init.add_argument("--endpoint", help="Public endpoint host or IP (prompted if omitted)")
    p_init.add_argument("--port", type=int, default=DEFAULT_LISTEN_PORT)
    p_init.set_defaults(func=cmd_init)

    p_up = sub.add_parser("up", help="Bring up WireGuard interface (requires sudo)")
    p_up.set_defaults(func=cmd_up)

    p_down = sub.add_parser("down", help="Bring down WireGuard interface (requires sudo)")
    p_down.set_defaults(func=cmd_down)

    p_add = sub.add_parser("add", help="Add a new peer")
    p_add.add_argument("name")
    p_add.set_defaults(func=cmd_add)

    p_rm = sub.add_parser("remove", aliases=["rm"], help="Remove a peer")
    p_rm.add_argument("name")
    p_rm.set_defaults(func=cmd_remove)

    p_list = sub.add_parser("list", aliases=["ls"], help="List all peers")
    p_list.set_defaults(func=cmd_list)

    p_show = sub.add_parser("show", help="Print a peer's client config")
    p_show.add_argument("name")
    p_show.set_defaults(func=cmd_show)

    p_enable = sub.add_parser("enable", help="Include a peer in the server config")
    p_enable.add_argument("name")
    p_enable.set_defaults(func=cmd_enable)

    p_disable = sub.add_parser("disable", help="Exclude a peer from the server config")
    p_disable.add_argument("name")
    p_disable.set_defaults(func=cmd_disable)

    p_sync = sub.add_parser("sync", help="Sync peers to running interface (requires sudo)")
    p_sync.set_defaults(func=cmd_sync)

    p_web = sub.add_parser("web", help="Start REST API (localhost only)")
    p_web.add_argument("port", nargs="?", type=int, default=DEFAULT_WEB_PORT)
    p_web.set_defaults(func=cmd_web)

    return parser


def _describe(error: VPNError) -> str:
    if isinstance(error, ConfigNotFoundError):
        return "Not initialized - run 'vpn init' first"
    if isinstance(error, PeerExistsError):
        return f"Peer already exists: {error.name}"
    if isinstance(error, PeerNotFoundError):
        return f"Peer not found: {error.name}"
    return str(error)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        args.func(args)
    except VPNError as e:
        print(f"Error: {_describe(e)}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
