"""
peerman Admin Module

Client side of the mesh node's admin socket.

Protocol: newline-delimited JSON over a persistent Unix or TCP stream.
"""

from .codec import (
    Request,
    Response,
    Outcome,
    TOLERATED_ERRORS,
    encode_request,
    decode_response,
)

from .client import (
    AdminClient,
    parse_endpoint,
)

__all__ = [
    # Codec
    'Request',
    'Response',
    'Outcome',
    'TOLERATED_ERRORS',
    'encode_request',
    'decode_response',
    # Client
    'AdminClient',
    'parse_endpoint',
]
