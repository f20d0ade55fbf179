"""
peerman Admin Client

Persistent connection to the mesh node's admin socket.

Design:
- One long-lived stream, opened once at startup and never re-dialed
- One request in flight at a time; each request reads exactly one
  response line
- Every request asks the node to keep the connection open
- Link conflicts ("already configured" / "not configured") come back
  as Outcome values, every other error is raised
"""

import socket
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

from .codec import (
    Request,
    Response,
    Outcome,
    TOLERATED_ERRORS,
    encode_request,
    decode_response,
)
from ..errors import AdminConnectionError, AdminResponseError, ProtocolError
from ..mesh.peer import PeerSnapshot


logger = logging.getLogger("peerman.admin")

# Socket timeout (seconds)
SOCKET_TIMEOUT = 30

# Maximum response size (4MB, getpeers on a busy node is large)
MAX_RESPONSE_SIZE = 4 * 1024 * 1024


def parse_endpoint(endpoint: str) -> Tuple[str, Any]:
    """
    Split an admin endpoint into a transport and an address.

    Accepts unix://<path>, tcp://<host>:<port> or a bare host:port,
    which is treated as TCP.

    Returns:
        ("unix", path) or ("tcp", (host, port))

    Raises:
        AdminConnectionError: If the scheme is unknown or the address malformed
    """
    if "://" not in endpoint:
        return "tcp", _split_host_port(endpoint, endpoint)

    scheme, _, rest = endpoint.partition("://")
    scheme = scheme.lower()

    if scheme == "unix":
        if not rest:
            raise AdminConnectionError(f"missing socket path: {endpoint}")
        return "unix", rest

    if scheme == "tcp":
        return "tcp", _split_host_port(rest.split("/", 1)[0], endpoint)

    raise AdminConnectionError(f"protocol not supported: {endpoint}")


def _split_host_port(hostport: str, endpoint: str) -> Tuple[str, int]:
    try:
        parts = urlsplit("//" + hostport)
        host, port = parts.hostname, parts.port
    except ValueError as e:
        raise AdminConnectionError(f"malformed address: {endpoint}") from e

    if not host or port is None:
        raise AdminConnectionError(f"address needs a host and a port: {endpoint}")
    return host, port


class AdminClient:
    """
    Client for the node's admin socket.

    Usage:
        with AdminClient.connect("unix:///var/run/yggdrasil/yggdrasil.sock") as client:
            snapshot = client.fetch_peers()
            client.set_peer("tcp://203.0.113.7:9001", True)
    """

    def __init__(self, sock: socket.socket, endpoint: str = ""):
        """
        Wrap an already connected stream socket.

        Args:
            sock: Connected socket
            endpoint: Endpoint string, for log messages
        """
        self._socket: Optional[socket.socket] = sock
        self._reader = sock.makefile("rb")
        self._endpoint = endpoint

    @classmethod
    def connect(cls, endpoint: str, timeout: float = SOCKET_TIMEOUT) -> 'AdminClient':
        """
        Dial the admin socket.

        Raises:
            AdminConnectionError: If the endpoint is invalid or the dial fails
        """
        kind, address = parse_endpoint(endpoint)

        try:
            if kind == "unix":
                logger.info(f"connecting to UNIX socket {address}")
                sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                sock.settimeout(timeout)
                try:
                    sock.connect(address)
                except OSError:
                    sock.close()
                    raise
            else:
                host, port = address
                logger.info(f"connecting to TCP socket {host}:{port}")
                sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise AdminConnectionError(f"could not connect to {endpoint}: {e}") from e

        logger.info("connected")
        return cls(sock, endpoint)

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._socket is None:
            return
        try:
            self._reader.close()
        finally:
            self._socket.close()
            self._socket = None

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    def __enter__(self) -> 'AdminClient':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def query(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Tuple[Outcome, Response]:
        """
        Send one request and wait for its response.

        Returns:
            The outcome and the decoded response

        Raises:
            AdminConnectionError: If the stream is closed or fails
            ProtocolError: If the exchange is malformed
            AdminResponseError: If the node reports an error that is not tolerated
        """
        if self._socket is None:
            raise AdminConnectionError("not connected")

        request = Request(name=name, arguments=arguments)
        data = encode_request(request)

        try:
            self._socket.sendall(data)
            line = self._reader.readline(MAX_RESPONSE_SIZE + 1)
        except OSError as e:
            raise AdminConnectionError(f"lost connection to admin socket: {e}") from e

        if not line:
            raise AdminConnectionError("admin socket closed the connection")
        if len(line) > MAX_RESPONSE_SIZE:
            raise ProtocolError("response too large")

        response = decode_response(line)
        return self._classify(name, response), response

    def _classify(self, name: str, response: Response) -> Outcome:
        if not response.is_error:
            return Outcome.APPLIED

        if not response.error:
            raise ProtocolError("admin socket returned an error but didn't specify any error text")

        outcome = TOLERATED_ERRORS.get(response.error)
        if outcome is None:
            raise AdminResponseError(name, response.error)

        logger.debug(f"{name}: tolerated conflict ({response.error})")
        return outcome

    def fetch_peers(self) -> PeerSnapshot:
        """
        Get the node's current peer connections.

        Raises:
            ProtocolError: If the peer listing is malformed
        """
        logger.info("getting peers")
        _, response = self.query("getpeers")
        return PeerSnapshot.from_response(response.response)

    def set_peer(self, uri: str, present: bool) -> Outcome:
        """
        Add (present=True) or remove (present=False) a peer link.

        These requests are blind: a successful response carries no payload.
        """
        if present:
            logger.info(f"adding peer: {uri}")
            name = "addpeer"
        else:
            logger.info(f"removing peer: {uri}")
            name = "removepeer"

        outcome, _ = self.query(name, {"uri": uri})
        return outcome
