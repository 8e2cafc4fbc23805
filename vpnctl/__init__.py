"""vpnctl - WireGuard overlay peer registry and config renderer"""

__version__ = "0.1.0"
