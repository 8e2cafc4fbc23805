"""
WireGuard keypair and identifier generation.

This module provides functionality for:
- Generating clamped X25519 keypairs for WireGuard peers and the server
- Generating opaque random peer identifiers
- Deriving and validating base64 keys

WireGuard uses Curve25519 for key exchange, which uses X25519 keys.
Keys are stored in base64 format as per WireGuard conventions.
"""

import os
import base64
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives import serialization

from vpnctl.errors import VPNError, RandomSourceError


KEY_SIZE = 32
ID_SIZE = 8


class WireGuardKeyError(VPNError):
    """Custom exception for malformed WireGuard keys."""
    pass


def _random_bytes(size: int, purpose: str) -> bytes:
    try:
        return os.urandom(size)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"generate {purpose}: {e}") from e


def _clamp(scalar: bytes) -> bytes:
    clamped = bytearray(scalar)
    clamped[0] &= 248
    clamped[31] &= 127
    clamped[31] |= 64
    return bytes(clamped)


def _public_bytes(private_key_bytes: bytes) -> bytes:
    private_key_obj = X25519PrivateKey.from_private_bytes(private_key_bytes)
    return private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a new WireGuard keypair.

    The private scalar is drawn from the OS random source and clamped before
    the public key is derived by scalar multiplication on the base point, so
    the stored private key is byte-identical to what `wg genkey` would emit.

    Returns:
        Tuple[str, str]: A tuple containing (private_key, public_key) in base64 format.
                        Both keys are 44 characters long (32 bytes base64 encoded).

    Raises:
        RandomSourceError: If the random source is unavailable
    """
    private_key_bytes = _clamp(_random_bytes(KEY_SIZE, "private key"))
    public_key_bytes = _public_bytes(private_key_bytes)

    private_key_b64 = base64.b64encode(private_key_bytes).decode('ascii')
    public_key_b64 = base64.b64encode(public_key_bytes).decode('ascii')

    return private_key_b64, public_key_b64


def generate_id() -> str:
    """
    Generate an opaque peer identifier (8 random bytes, hex encoded).

    Raises:
        RandomSourceError: If the random source is unavailable
    """
    return _random_bytes(ID_SIZE, "id").hex()


def get_public_key_from_private(private_key: str) -> str:
    """
    Derive the public key from a private key.

    Args:
        private_key: Base64-encoded X25519 private key

    Returns:
        str: Base64-encoded X25519 public key

    Raises:
        WireGuardKeyError: If the private key is invalid
    """
    try:
        private_key_bytes = base64.b64decode(private_key, validate=True)
    except (ValueError, TypeError) as e:
        raise WireGuardKeyError(f"Invalid private key format: {str(e)}")

    if len(private_key_bytes) != KEY_SIZE:
        raise WireGuardKeyError(
            f"Invalid private key length: expected 32 bytes, got {len(private_key_bytes)}"
        )

    return base64.b64encode(_public_bytes(private_key_bytes)).decode('ascii')


def _is_key(value) -> bool:
    if value is None or not isinstance(value, str):
        return False

    if len(value) != 44:
        return False

    try:
        decoded = base64.b64decode(value, validate=True)
    except (ValueError, TypeError):
        return False

    return len(decoded) == KEY_SIZE


def validate_public_key_format(public_key) -> bool:
    """
    Validate that a public key matches the WireGuard base64 format.

    WireGuard public keys are 44 characters long (32 bytes base64 encoded)
    and end with '=' padding.
    """
    return _is_key(public_key)


def validate_private_key_format(private_key) -> bool:
    """Validate that a private key matches the WireGuard base64 format."""
    if not _is_key(private_key):
        return False

    try:
        X25519PrivateKey.from_private_bytes(base64.b64decode(private_key))
    except ValueError:
        return False

    return True
