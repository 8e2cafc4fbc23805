"""
vpnctl error taxonomy

Every failure raised by the registry, allocator, key generator and renderer
derives from VPNError so callers (CLI, REST API) can map error kinds to
exit codes and HTTP statuses without inspecting message strings.
"""


class VPNError(Exception):
    """Base exception for vpnctl operations."""
    pass


class ConflictError(VPNError):
    """Raised when a name, key or address is already taken."""
    pass


class PeerExistsError(ConflictError):
    """Raised when creating a peer whose name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"peer already exists: {name}")


class PeerNotFoundError(VPNError):
    """Raised when operating on a peer that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"peer not found: {name}")


class AddressSpaceExhaustedError(VPNError):
    """Raised when no free host address is left in the network prefix."""

    def __init__(self, prefix: str, allocated_count: int):
        self.prefix = prefix
        self.allocated_count = allocated_count
        super().__init__(
            f"no available ips: {allocated_count} addresses allocated "
            f"from {prefix}"
        )


class UnsupportedAddressFamilyError(VPNError):
    """Raised when the network prefix is not IPv4."""
    pass


class RandomSourceError(VPNError):
    """Raised when the system random source cannot produce bytes."""
    pass


class StorageError(VPNError):
    """Raised when opening, migrating or writing the peer store fails."""
    pass


class ConfigFormatError(VPNError):
    """Raised when a network prefix or configuration value is malformed."""
    pass


class ConfigNotFoundError(VPNError):
    """Raised when config.json is missing from the data directory."""
    pass


class TunnelCommandError(VPNError):
    """Raised when wg / wg-quick exits non-zero or cannot be started."""
    pass
