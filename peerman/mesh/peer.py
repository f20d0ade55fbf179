"""
peerman Peer Snapshot

The node's peer connections as reported by one getpeers call, and the
locality check run against them.

Design:
- A snapshot is taken once per cycle and never mutated
- Entries keep the order the node reported them in
- Locality is a guess: the peer listing does not say whether a link
  is local, so a link-local address is taken to mean "same segment"
"""

import ipaddress
from typing import Any, Iterable, Iterator, Optional, Tuple, Union
from urllib.parse import urlsplit, unquote
from dataclasses import dataclass

from ..errors import ProtocolError


IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Field names in a getpeers entry, newest first
URI_FIELDS = ("remote", "uri")
KEY_FIELDS = ("key", "publicKey")


def _pick(data: dict, names: Tuple[str, ...], what: str) -> str:
    for name in names:
        if name in data:
            value = data[name]
            if not isinstance(value, str):
                raise ProtocolError(f"peer {what} must be a string, got {value!r}")
            return value
    return ""


@dataclass(frozen=True)
class PeerEntry:
    """
    One peer connection.

    The URI may carry query parameters (e.g. ?key=...), the public key
    is the peer's 64 character hex identity.
    """
    uri: str
    public_key: str = ""
    up: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> 'PeerEntry':
        """
        Build an entry from a getpeers peer object.

        Raises:
            ProtocolError: If the object has the wrong shape
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"peer entry must be an object, got {data!r}")

        up = data.get("up", False)
        if not isinstance(up, bool):
            raise ProtocolError(f"peer up flag must be a boolean, got {up!r}")

        return cls(
            uri=_pick(data, URI_FIELDS, "uri"),
            public_key=_pick(data, KEY_FIELDS, "key"),
            up=up,
        )

    @property
    def address(self) -> Optional[IPAddress]:
        """Literal IP address of the peer, or None for hostnames."""
        return uri_address(self.uri)


@dataclass(frozen=True)
class PeerSnapshot:
    """
    Immutable view of the node's peers for a single cycle.

    Supports iteration, len() and exact URI membership tests.
    """
    peers: Tuple[PeerEntry, ...] = ()

    @classmethod
    def from_response(cls, payload: Any) -> 'PeerSnapshot':
        """
        Build a snapshot from a getpeers response payload.

        Raises:
            ProtocolError: If the payload is not {"peers": [...]}
        """
        if not isinstance(payload, dict):
            raise ProtocolError("json error when parsing peers: response must be an object")

        peers = payload.get("peers")
        if peers is None:
            peers = []
        if not isinstance(peers, list):
            raise ProtocolError("json error when parsing peers: peers must be an array")

        return cls(peers=tuple(PeerEntry.from_dict(p) for p in peers))

    def __iter__(self) -> Iterator[PeerEntry]:
        return iter(self.peers)

    def __len__(self) -> int:
        return len(self.peers)

    def __contains__(self, uri: object) -> bool:
        return any(peer.uri == uri for peer in self.peers)



def uri_address(uri: str) -> Optional[IPAddress]:
    """
    Parse the host part of a peer URI as an IP address.

    Zone ids are accepted (tcp://[fe80::1%25eth0]:9001).

    Returns:
        The address, or None if the host is not a literal IP

    Raises:
        ProtocolError: If the URI itself cannot be parsed
    """
    try:
        host = urlsplit(uri).hostname
    except ValueError as e:
        raise ProtocolError(f"bogus url in server response: {uri}") from e

    if not host:
        return None

    try:
        return ipaddress.ip_address(unquote(host))
    except ValueError:
        return None


def is_link_local(address: IPAddress) -> bool:
    """Link-local unicast: 169.254.0.0/16 or fe80::/10."""
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return address.is_link_local


def has_trusted_router(snapshot: Iterable[PeerEntry], trusted_keys: Iterable[str]) -> bool:
    """
    Check whether a trusted router is connected over the local segment.

    A peer counts if its link is up, its URI host is a link-local IP
    address and its public key is trusted. Peers addressed by hostname
    are never local. This is a heuristic, not a guarantee.

    Raises:
        ProtocolError: If a peer URI cannot be parsed
    """
    keys = frozenset(trusted_keys)

    for peer in snapshot:
        # Skip peer connections that are not actually up.
        if not peer.up:
            continue

        address = peer.address
        if address is None:
            continue

        if is_link_local(address) and peer.public_key in keys:
            return True

    return False
