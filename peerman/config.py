"""
peerman Configuration Management

Handles loading and validation of configuration from a TOML file,
the environment and the command line (in increasing priority).
"""

import re
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit
from dataclasses import dataclass, field

import toml

from . import PUBLIC_KEY_LENGTH
from .errors import ConfigurationError


logger = logging.getLogger("peerman.config")


# Default configuration path
DEFAULT_CONFIG_PATH = Path("/etc/yggdrasil/peerman.toml")

# Default admin endpoint of a local node
DEFAULT_ENDPOINT = "unix:///var/run/yggdrasil/yggdrasil.sock"

# Default cycle time (seconds)
DEFAULT_LOOP_TIME = 60.0

# Default admin socket timeout (seconds)
DEFAULT_TIMEOUT = 30.0

# Prefix for environment overrides (PEERMAN_ENDPOINT, ...)
ENV_PREFIX = "PEERMAN_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Go-style duration units, in seconds
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and strings such as "90", "1m",
    "1m30s", "500ms" or "2h".

    Raises:
        ConfigurationError: If the value is not a duration
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"invalid duration: {value!r}")

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ConfigurationError(f"invalid duration: {value!r}")
    return total


def _as_list(value: Any, key: str) -> Tuple[str, ...]:
    """Accept a list of strings, or one string separated by commas/whitespace."""
    if isinstance(value, str):
        return tuple(item for item in re.split(r"[,\s]+", value) if item)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigurationError(f"{key} must be a list of strings")


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{key} must be a string")
    return value


@dataclass
class Config:
    """
    Complete peerman configuration.
    """
    # Seconds between reconcile cycles
    loop_time: float = DEFAULT_LOOP_TIME

    # Admin socket of the node
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT

    # Trusted router public keys
    routers: Tuple[str, ...] = ()

    # Fallback peer URIs to toggle
    peers: Tuple[str, ...] = ()

    # Paths
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> 'Config':
        """
        Load configuration from file, then apply environment overrides.

        A missing file is not an error and yields the defaults.

        Args:
            config_path: Path to config file (default: /etc/yggdrasil/peerman.toml)
            environ: Environment to read PEERMAN_* overrides from

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If the file cannot be read or has bad values
        """
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        config = cls()
        config.config_path = path

        if path.exists():
            try:
                data = toml.load(str(path))
            except (OSError, toml.TomlDecodeError) as e:
                raise ConfigurationError(f"could not read {path}: {e}") from e
            config._apply_dict(data)

        if environ is not None:
            config._apply_env(environ)

        return config

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary data to config."""
        if "looptime" in data:
            self.loop_time = parse_duration(data["looptime"])
        if "endpoint" in data:
            self.endpoint = _as_str(data["endpoint"], "endpoint")
        if "timeout" in data:
            self.timeout = parse_duration(data["timeout"])
        if "routers" in data:
            self.routers = _as_list(data["routers"], "routers")
        if "peers" in data:
            self.peers = _as_list(data["peers"], "peers")
        if "log_level" in data:
            self.log_level = _as_str(data["log_level"], "log_level").upper()
        if "log_file" in data:
            self.log_file = Path(_as_str(data["log_file"], "log_file"))

    def _apply_env(self, environ: Mapping[str, str]) -> None:
        """Apply PEERMAN_* environment variables, keyed like the file."""
        data = {}
        for key in ("looptime", "endpoint", "timeout", "routers", "peers", "log_level", "log_file"):
            value = environ.get(ENV_PREFIX + key.upper())
            if value is not None:
                data[key] = value
        self._apply_dict(data)

    def apply_overrides(
        self,
        looptime: Optional[str] = None,
        endpoint: Optional[str] = None,
        routers: Optional[Sequence[str]] = None,
        peers: Optional[Sequence[str]] = None,
    ) -> None:
        """Apply command line overrides; None leaves a value alone."""
        if looptime is not None:
            self.loop_time = parse_duration(looptime)
        if endpoint is not None:
            self.endpoint = endpoint
        if routers is not None:
            self.routers = tuple(routers)
        if peers is not None:
            self.peers = tuple(peers)

    def validate(self) -> None:
        """
        Validate configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        # Public keys are a set length.
        for key in self.routers:
            if len(key) != PUBLIC_KEY_LENGTH:
                raise ConfigurationError(
                    f"router public keys are expected to be exactly "
                    f"{PUBLIC_KEY_LENGTH} characters long: {key}"
                )

        # Peer URIs must parse.
        for uri in self.peers:
            try:
                parts = urlsplit(uri)
            except ValueError as e:
                raise ConfigurationError(f"could not parse peer uri: {uri}") from e
            if not parts.scheme:
                raise ConfigurationError(f"peer uri has no scheme: {uri}")

        if not self.endpoint:
            raise ConfigurationError("endpoint must not be empty")

        if not self.loop_time > 0:
            raise ConfigurationError(f"Invalid loop time: {self.loop_time}")

        if not self.timeout > 0:
            raise ConfigurationError(f"Invalid timeout: {self.timeout}")

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

        # Valid, but every cycle is a no-op.
        if not self.peers:
            logger.warning(f"no fallback peers configured in {self.config_path}, nothing to toggle")
