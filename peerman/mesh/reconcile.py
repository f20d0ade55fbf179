"""
peerman Reconciler

Brings the fallback peer links into the state the locality check asks
for: absent while a trusted router is connected locally, present
otherwise.

Adds are always sent; the node tolerates adding a peer it already has.
Removes are only sent for peers the snapshot shows as connected.
"""

import logging
from typing import Iterable, List, Tuple
from urllib.parse import urlsplit, urlunsplit
from dataclasses import dataclass, field

from .peer import PeerSnapshot
from ..admin.codec import Outcome


logger = logging.getLogger("peerman.reconcile")


def strip_query(uri: str) -> str:
    """Drop the query string; the node matches peers on removal without it."""
    return urlunsplit(urlsplit(uri)._replace(query=""))


@dataclass
class ReconcileReport:
    """What one reconcile pass did, in fallback list order."""
    trusted_present: bool
    added: List[Tuple[str, Outcome]] = field(default_factory=list)
    removed: List[Tuple[str, Outcome]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def requests(self) -> int:
        return len(self.added) + len(self.removed)


def reconcile(
    client,
    snapshot: PeerSnapshot,
    fallback_peers: Iterable[str],
    trusted_present: bool,
) -> ReconcileReport:
    """
    Toggle every fallback peer once.

    Args:
        client: Anything with set_peer(uri, present) -> Outcome
        snapshot: Peers as fetched at the start of this cycle
        fallback_peers: Configured fallback peer URIs
        trusted_present: Verdict of has_trusted_router for this snapshot

    Errors from the client propagate and abandon the rest of the pass.
    """
    report = ReconcileReport(trusted_present=trusted_present)

    for uri in fallback_peers:
        if not trusted_present:
            report.added.append((uri, client.set_peer(uri, True)))
            continue

        stripped = strip_query(uri)

        # Not connected, so don't bother the node.
        if stripped not in snapshot:
            logger.debug(f"peer not connected, nothing to remove: {stripped}")
            report.skipped.append(stripped)
            continue

        report.removed.append((stripped, client.set_peer(stripped, False)))

    return report
