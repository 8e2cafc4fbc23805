"""
Network configuration

NetworkConfig is loaded once per invocation from <data_dir>/config.json and
passed explicitly to the registry manager and the renderer.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vpnctl.errors import ConfigFormatError, ConfigNotFoundError, VPNError
from vpnctl.networking.wireguard_keys import (
    validate_private_key_format,
    validate_public_key_format,
)
from vpnctl.services.ip_pool_manager import parse_prefix

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
DATA_DIR_ENV = "VPN_DATA_DIR"

DEFAULT_INTERFACE = "wg0"
DEFAULT_LISTEN_PORT = 51820
DEFAULT_ADDRESS = "10.0.0.1/24"
DEFAULT_DNS = "1.1.1.1"
DEFAULT_NAT_INTERFACE = "eth0"


class NetworkConfig(BaseModel):
    """
    Process-wide network configuration

    Immutable for the duration of a command.
    """
    model_config = ConfigDict(frozen=True)

    interface: str = Field(
        DEFAULT_INTERFACE,
        min_length=1,
        description="WireGuard interface name"
    )
    listen_port: int = Field(
        DEFAULT_LISTEN_PORT,
        ge=1,
        le=65535,
        description="UDP port the server listens on"
    )
    address: str = Field(
        DEFAULT_ADDRESS,
        description="Server address and network prefix (e.g., 10.0.0.1/24)"
    )
    endpoint: str = Field(
        "",
        description="Public endpoint host:port handed to clients"
    )
    private_key: str = Field(..., description="Server private key (base64)")
    public_key: str = Field(..., description="Server public key (base64)")
    dns: str = Field("", description="DNS server pushed to clients")
    data_dir: str = Field("", description="Directory holding config and database")
    nat_interface: str = Field("", description="Egress interface for masquerading")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate the server prefix is an allocatable IPv4 network"""
        try:
            parse_prefix(v)
        except VPNError as e:
            raise ValueError(str(e))
        return v

    @field_validator("private_key")
    @classmethod
    def validate_private_key(cls, v: str) -> str:
        if not validate_private_key_format(v):
            raise ValueError("private_key must be a base64 encoded 32 byte key")
        return v

    @field_validator("public_key")
    @classmethod
    def validate_public_key(cls, v: str) -> str:
        if not validate_public_key_format(v):
            raise ValueError("public_key must be a base64 encoded 32 byte key")
        return v


def data_dir() -> Path:
    """
    Resolve the data directory

    VPN_DATA_DIR wins; under sudo the invoking user's home is used so
    config and database stay with the operator rather than root.
    """
    override = os.getenv(DATA_DIR_ENV)
    if override:
        return Path(override)

    sudo_user = os.getenv("SUDO_USER")
    if sudo_user:
        return Path(os.path.expanduser(f"~{sudo_user}")) / ".vpn"

    return Path.home() / ".vpn"


def config_path(directory: Optional[Path] = None) -> Path:
    return Path(directory or data_dir()) / CONFIG_FILENAME


def config_data_dir(config: NetworkConfig) -> Path:
    """Data directory of a config; an empty data_dir falls back to data_dir()"""
    if config.data_dir:
        return Path(config.data_dir)
    return data_dir()


def load_config(directory: Optional[Path] = None) -> NetworkConfig:
    """
    Load config.json from the data directory

    Raises:
        ConfigNotFoundError: If the config file does not exist
        ConfigFormatError: If the file is not valid JSON or fails validation
    """
    directory = Path(directory or data_dir())
    path = config_path(directory)

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigNotFoundError(f"load config: {path} not found") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigFormatError(f"invalid config: {e}") from e

    if not isinstance(data, dict):
        raise ConfigFormatError("invalid config: expected a JSON object")

    data["data_dir"] = str(directory)

    try:
        return NetworkConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigFormatError(f"invalid config: {e}") from e


def save_config(config: NetworkConfig) -> Path:
    """
    Write config.json with owner-only permissions

    Returns:
        Path of the written file
    """
    directory = config_data_dir(config)
    directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    os.chmod(directory, 0o700)

    path = config_path(directory)
    payload = config.model_dump()
    payload["data_dir"] = str(directory)

    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    os.chmod(path, 0o600)

    logger.info(f"Saved network config to {path}")
    return path
