"""
Peer store models
"""

from .peer import Peer, EnabledPeer

__all__ = [
    "Peer",
    "EnabledPeer",
]
