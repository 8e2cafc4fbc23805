"""
WireGuard Configuration Manager

Writes rendered configs to the data directory and drives the external
tunnel tooling (wg-quick, wg syncconf) through sudo.

Security considerations:
- Config file permissions: 0600 (owner read/write only)
- Atomic config updates to prevent corruption
"""

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List

from vpnctl.config import NetworkConfig, config_data_dir
from vpnctl.errors import TunnelCommandError

logger = logging.getLogger(__name__)

PEERS_FILENAME = "peers.conf"


def supports_firewall_rules() -> bool:
    """
    Whether the host firewall is iptables

    NAT PostUp/PostDown rules are only rendered on Linux; other platforms
    get a config without them.
    """
    return sys.platform.startswith("linux")


class WireGuardConfigManager:
    """
    WireGuard configuration file manager

    Attributes:
        config: Network configuration
        config_path: <data_dir>/<interface>.conf
        peers_path: <data_dir>/peers.conf
    """

    def __init__(self, config: NetworkConfig):
        self.config = config
        data_dir = config_data_dir(config)
        self.config_path = data_dir / f"{config.interface}.conf"
        self.peers_path = data_dir / PEERS_FILENAME

    def _write_config(self, path: Path, content: str) -> None:
        """
        Write configuration file atomically

        Uses atomic write (write to temp, then rename) to prevent corruption.

        Args:
            path: Destination file
            content: Config file contents
        """
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".wg_",
            suffix=".conf.tmp"
        )

        try:
            with os.fdopen(temp_fd, 'w') as f:
                f.write(content)

            # Set proper permissions (owner read/write only)
            os.chmod(temp_path, 0o600)

            shutil.move(temp_path, path)

            logger.debug(f"Updated config file: {path}")

        except Exception:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            raise

    def write_server_config(self, content: str) -> Path:
        self._write_config(self.config_path, content)
        logger.info(f"Wrote WireGuard config to {self.config_path}")
        return self.config_path

    def write_peer_config(self, content: str) -> Path:
        self._write_config(self.peers_path, content)
        return self.peers_path

    def _run_sudo(self, args: List[str]) -> None:
        command = ["sudo", *args]
        logger.debug(f"Running {' '.join(command)}")

        try:
            subprocess.run(command, check=True)
        except FileNotFoundError as e:
            raise TunnelCommandError(f"{args[0]}: command not found") from e
        except subprocess.CalledProcessError as e:
            raise TunnelCommandError(
                f"{' '.join(args)} exited with status {e.returncode}"
            ) from e

    def up(self, server_config: str) -> None:
        """Write the server config and bring the interface up"""
        path = self.write_server_config(server_config)
        self._run_sudo(["wg-quick", "up", str(path)])
        logger.info(f"Interface {self.config.interface} is up")

    def down(self) -> None:
        self._run_sudo(["wg-quick", "down", str(self.config_path)])
        logger.info(f"Interface {self.config.interface} is down")

    def sync(self, server_config: str, peer_config: str) -> None:
        """
        Apply peer changes to the running interface without a restart

        Uses `wg syncconf` with the [Peer] sections only; the full config is
        also rewritten so the next `up` matches the live state.
        """
        self.write_server_config(server_config)
        path = self.write_peer_config(peer_config)
        self._run_sudo(["wg", "syncconf", self.config.interface, str(path)])
        logger.info(f"Synced peers to {self.config.interface}")
