"""
IP Address Pool Manager

Picks host addresses for new peers from the server's network prefix.

Allocation is a pure function of (prefix, used addresses): the scan walks
host identifiers 2..254 over the last octet and returns the lowest free one,
so repeated runs against the same snapshot always yield the same address.
Host .1 belongs to the server and must be part of the used set; .0 and .255
are never issued.
"""

import ipaddress
import logging
from typing import Dict, Iterable, Set

from vpnctl.errors import (
    AddressSpaceExhaustedError,
    ConfigFormatError,
    UnsupportedAddressFamilyError,
)

logger = logging.getLogger(__name__)

FIRST_HOST = 2
LAST_HOST = 254


def parse_prefix(prefix: str) -> ipaddress.IPv4Interface:
    """
    Parse a server prefix such as "10.0.0.1/24"

    Host bits are allowed; the interface keeps both the server address and
    the network it belongs to.

    Raises:
        ConfigFormatError: If the prefix is not a valid CIDR string
        UnsupportedAddressFamilyError: If the prefix is not IPv4
    """
    try:
        interface = ipaddress.ip_interface(prefix)
    except (ValueError, TypeError) as e:
        raise ConfigFormatError(f"parse cidr: {e}") from e

    if not isinstance(interface, ipaddress.IPv4Interface):
        raise UnsupportedAddressFamilyError(
            f"unsupported ip family: {prefix}"
        )

    # the scan only varies the last octet
    if interface.network.prefixlen > 24:
        raise ConfigFormatError(
            f"prefix {prefix} is narrower than /24"
        )

    return interface


def _normalize(addresses: Iterable[str]) -> Set[str]:
    used: Set[str] = set()
    for address in addresses:
        if address:
            used.add(address.split("/", 1)[0])
    return used


def _candidates(network: ipaddress.IPv4Network):
    base = int(network.network_address) & 0xFFFFFF00
    for host in range(FIRST_HOST, LAST_HOST + 1):
        yield str(ipaddress.IPv4Address(base | host))


def allocate_address(prefix: str, used_addresses: Iterable[str]) -> str:
    """
    Allocate the lowest free host address in the prefix

    Args:
        prefix: Server network prefix (e.g., "10.0.0.1/24")
        used_addresses: Addresses already taken, with or without "/32".
            Must include the server address.

    Returns:
        Allocated address without mask (e.g., "10.0.0.2")

    Raises:
        ConfigFormatError: If prefix is malformed
        UnsupportedAddressFamilyError: If prefix is not IPv4
        AddressSpaceExhaustedError: If hosts 2..254 are all taken
    """
    interface = parse_prefix(prefix)
    used = _normalize(used_addresses)

    for candidate in _candidates(interface.network):
        if candidate not in used:
            logger.debug(f"Allocated address {candidate} from {prefix}")
            return candidate

    raise AddressSpaceExhaustedError(
        prefix=prefix,
        allocated_count=len(used)
    )


def pool_stats(prefix: str, used_addresses: Iterable[str]) -> Dict[str, int]:
    """
    Get pool statistics for the allocatable range

    Returns:
        Dictionary with total, allocated and available host counts
    """
    interface = parse_prefix(prefix)
    used = _normalize(used_addresses)

    total = LAST_HOST - FIRST_HOST + 1
    allocated = sum(1 for ip in _candidates(interface.network) if ip in used)

    return {
        "total_addresses": total,
        "allocated_addresses": allocated,
        "available_addresses": total - allocated,
        "utilization_percent": int((allocated / total) * 100),
    }
