import json
import socket
import shutil
import tempfile
import threading
from pathlib import Path

import pytest

from peerman.admin.codec import Outcome
from peerman.mesh.peer import PeerEntry, PeerSnapshot


TRUSTED_KEY = "a1" * 32
OTHER_KEY = "b2" * 32


class FakeAdminServer:
    """
    Admin socket stand-in for a single client connection.

    Keeps a table of configured peers like a node would: addpeer of a
    known URI and removepeer of an unknown one answer with the node's
    conflict errors. getpeers lists the configured peers (up) followed
    by `static_peers`. Entries pushed to `scripted` are sent instead of
    the simulated answer, in order; a bytes entry is sent raw and None
    closes the connection.
    """

    def __init__(self, family: str = "unix"):
        self.family = family
        self.configured = []
        self.static_peers = []
        self.scripted = []
        self.requests = []
        self._dir = None
        self._listener = None
        self._thread = None

    def start(self) -> "FakeAdminServer":
        if self.family == "unix":
            self._dir = tempfile.mkdtemp(prefix="pm")
            self.path = str(Path(self._dir) / "admin.sock")
            self._listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            self._listener.bind(self.path)
            self.endpoint = f"unix://{self.path}"
        else:
            self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._listener.bind(("127.0.0.1", 0))
            self.port = self._listener.getsockname()[1]
            self.endpoint = f"tcp://127.0.0.1:{self.port}"
        self._listener.listen(1)
        self._listener.settimeout(5.0)
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        # wakes a pending accept() when no client ever connected
        try:
            self._listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._listener.close()
        if self._thread:
            self._thread.join(timeout=5.0)
        if self._dir:
            shutil.rmtree(self._dir, ignore_errors=True)

    @property
    def names(self):
        return [r.get("request") for r in self.requests]

    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
        except OSError:
            return
        with conn, conn.makefile("rb") as reader:
            for line in reader:
                request = json.loads(line)
                self.requests.append(request)
                if self.scripted:
                    reply = self.scripted.pop(0)
                    if reply is None:
                        return
                    if isinstance(reply, bytes):
                        conn.sendall(reply)
                        continue
                else:
                    reply = self._simulate(request)
                conn.sendall(json.dumps(reply).encode() + b"\n")

    def _simulate(self, request: dict) -> dict:
        name = request.get("request")
        uri = (request.get("arguments") or {}).get("uri")

        if name == "getpeers":
            peers = [{"remote": u, "key": OTHER_KEY, "up": True} for u in self.configured]
            return {"status": "success", "request": request,
                    "response": {"peers": peers + list(self.static_peers)}}
        if name == "addpeer":
            if uri in self.configured:
                return {"status": "error", "error": "peer is already configured", "request": request}
            self.configured.append(uri)
            return {"status": "success", "request": request, "response": {}}
        if name == "removepeer":
            if uri not in self.configured:
                return {"status": "error", "error": "peer is not configured", "request": request}
            self.configured.remove(uri)
            return {"status": "success", "request": request, "response": {}}
        return {"status": "error", "error": f"unknown action '{name}'", "request": request}


class RecordingClient:
    """Records set_peer calls; answers fetch_peers with a fixed snapshot."""

    def __init__(self, snapshot=None, outcome=Outcome.APPLIED):
        self.snapshot = snapshot or PeerSnapshot()
        self.outcome = outcome
        self.calls = []
        self.closed = False

    def fetch_peers(self):
        return self.snapshot

    def set_peer(self, uri, present):
        self.calls.append((uri, present))
        return self.outcome

    def close(self):
        self.closed = True


def make_snapshot(*peers):
    """Build a snapshot from (uri, key, up) tuples."""
    return PeerSnapshot(peers=tuple(PeerEntry(uri=u, public_key=k, up=up) for u, k, up in peers))


@pytest.fixture
def admin_server():
    server = FakeAdminServer("unix").start()
    yield server
    server.stop()


@pytest.fixture
def tcp_admin_server():
    server = FakeAdminServer("tcp").start()
    yield server
    server.stop()
