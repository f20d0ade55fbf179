"""
peerman Errors

Exception hierarchy shared by the admin client, the mesh helpers and
the configuration loader.

Only tolerated conflicts (see admin.codec.Outcome) are ever recovered
from. Everything here is fatal and is turned into a non-zero exit by
peerman.main.
"""


class AdminError(Exception):
    """Base class for failures talking to the admin socket."""


class AdminConnectionError(AdminError, ConnectionError):
    """The admin socket could not be reached, or the stream was lost."""


class ProtocolError(AdminError):
    """A request could not be encoded or a response could not be understood."""


class AdminResponseError(ProtocolError):
    """The admin socket answered with an error that is not tolerated."""

    def __init__(self, request: str, message: str):
        super().__init__(f"admin socket returned an unhandled error for {request}: {message}")
        self.request = request
        self.message = message


class ConfigurationError(ValueError):
    """Invalid configuration, detected before any network activity."""
