"""
peerman Mesh Module

Peer state as seen through the admin socket, and the decisions taken
on it each cycle.

Components:
- peer.py: Peer snapshot and trusted router detection
- reconcile.py: Fallback peer toggling
"""

from .peer import (
    PeerEntry,
    PeerSnapshot,
    has_trusted_router,
    is_link_local,
    uri_address,
)

from .reconcile import (
    ReconcileReport,
    reconcile,
    strip_query,
)

__all__ = [
    # Peer
    'PeerEntry',
    'PeerSnapshot',
    'has_trusted_router',
    'is_link_local',
    'uri_address',
    # Reconcile
    'ReconcileReport',
    'reconcile',
    'strip_query',
]
