"""
peerman Admin Protocol Codec

Envelopes exchanged with the mesh node's admin socket.

Wire format:
- One JSON object per line in each direction
- Request:  {"request": name, "arguments": {...}, "keepalive": true}
- Response: {"status": "success"|"error", "error": text,
             "request": {...}, "response": {...}}

The operation name travels under the "request" key, which is what the
node expects; the response echoes the request back under the same key.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass

from ..errors import ProtocolError


# Response status values
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


class Outcome(Enum):
    """
    Result of a request that did not fail.

    The two conflict kinds mean the desired end state already holds:
    adding a peer that is configured, or removing one that is not.
    """
    APPLIED = "applied"
    ALREADY_CONFIGURED = "already configured"
    NOT_CONFIGURED = "not configured"

    @property
    def is_conflict(self) -> bool:
        return self is not Outcome.APPLIED


# Error texts the node reports for link conflicts. Anything else is fatal.
TOLERATED_ERRORS: Dict[str, Outcome] = {
    "peer is already configured": Outcome.ALREADY_CONFIGURED,
    "peer is not configured": Outcome.NOT_CONFIGURED,
    "link already configured": Outcome.ALREADY_CONFIGURED,
    "link not configured": Outcome.NOT_CONFIGURED,
}


@dataclass
class Request:
    """A single admin request. Never reused."""
    name: str
    arguments: Optional[Dict[str, Any]] = None
    keepalive: bool = True

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"request": self.name}
        if self.arguments is not None:
            data["arguments"] = self.arguments
        if self.keepalive:
            data["keepalive"] = True
        return data


@dataclass
class Response:
    """A decoded admin response."""
    status: str
    error: str = ""
    request: Any = None
    response: Any = None

    @property
    def is_error(self) -> bool:
        return self.status == STATUS_ERROR


def encode_request(request: Request) -> bytes:
    """
    Serialize a request to a single newline-terminated line.

    Raises:
        ProtocolError: If the arguments are not JSON-serializable
    """
    try:
        line = json.dumps(request.to_dict(), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"json error when encoding request {request.name}: {e}") from e
    return line.encode() + b"\n"


def decode_response(line: bytes) -> Response:
    """
    Parse one response line.

    Raises:
        ProtocolError: If the line is not a JSON object with a known status
    """
    try:
        data = json.loads(line)
    except ValueError as e:
        raise ProtocolError(f"json error when decoding response: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("response must be a JSON object")

    status = data.get("status")
    if status not in (STATUS_SUCCESS, STATUS_ERROR):
        raise ProtocolError(f"response has invalid status: {status!r}")

    error = data.get("error") or ""
    if not isinstance(error, str):
        raise ProtocolError("response error must be a string")

    return Response(
        status=status,
        error=error,
        request=data.get("request"),
        response=data.get("response"),
    )
