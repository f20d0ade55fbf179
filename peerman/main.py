"""
peerman Daemon Main Entry Point

The peermand daemon:
- Connects once to the node's admin socket
- Every cycle, fetches the peer list and checks for a trusted router
  on the local segment
- Removes the fallback peers while one is there, adds them otherwise

Any error other than a tolerated link conflict ends the process with a
non-zero status; a supervisor is expected to restart it.
"""

import os
import sys
import signal
import logging
import threading
import argparse
from enum import Enum
from pathlib import Path
from typing import Optional

from . import __version__
from .config import Config, DEFAULT_CONFIG_PATH, ENV_PREFIX
from .errors import AdminError, ConfigurationError
from .admin.client import AdminClient
from .mesh.peer import has_trusted_router
from .mesh.reconcile import ReconcileReport, reconcile


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("peerman")


class LoopState(Enum):
    """Control loop state."""
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    SLEEPING = "sleeping"


class PeerManDaemon:
    """
    Main peerman daemon class.

    Runs one reconcile cycle per interval over a single admin connection.
    Errors are not handled here; they end run() and are reported by main().
    """

    def __init__(self, config: Config, client: Optional[AdminClient] = None):
        """
        Initialize daemon with configuration.

        Args:
            config: Validated configuration
            client: Already connected admin client (connects on start() if None)
        """
        self.config = config
        self._client = client
        self._trusted_keys = frozenset(config.routers)
        self._shutdown_event = threading.Event()
        self.state = LoopState.IDLE
        self.cycles = 0

    def start(self) -> None:
        """Connect to the admin socket."""
        if self._client is None:
            self._client = AdminClient.connect(
                self.config.endpoint,
                timeout=self.config.timeout,
            )

    def stop(self) -> None:
        """Ask the loop to exit after the current step."""
        self._shutdown_event.set()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()

    def run_cycle(self) -> ReconcileReport:
        """
        Fetch, decide, act.

        The snapshot and the verdict are taken once and held for the
        whole cycle, however many requests the reconciler sends.
        """
        if self._client is None:
            raise AdminError("daemon not started")

        self.state = LoopState.FETCHING
        snapshot = self._client.fetch_peers()
        trusted_present = has_trusted_router(snapshot, self._trusted_keys)

        if trusted_present:
            logger.info(f"trusted router found among {len(snapshot)} peers, disabling fallback peers")
        else:
            logger.info(f"no trusted router among {len(snapshot)} peers, enabling fallback peers")

        self.state = LoopState.RECONCILING
        report = reconcile(self._client, snapshot, self.config.peers, trusted_present)
        logger.debug(
            f"cycle {self.cycles + 1}: {len(report.added)} added, "
            f"{len(report.removed)} removed, {len(report.skipped)} skipped"
        )

        self.state = LoopState.IDLE
        self.cycles += 1
        return report

    def run(self, once: bool = False) -> None:
        """
        Run cycles until stop() is called, or a single one if once is set.

        The connection is closed however the loop ends.
        """
        self.start()
        try:
            while self.is_running:
                self.run_cycle()
                if once:
                    break
                self.state = LoopState.SLEEPING
                self._shutdown_event.wait(self.config.loop_time)
                self.state = LoopState.IDLE
        finally:
            self.close()


def setup_logging(level: str, log_file: Optional[Path] = None) -> None:
    """Configure root logging for the daemon."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    if log_file:
        handler = logging.FileHandler(log_file, mode="a")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Yggdrasil fallback peer manager")
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--looptime",
        help="Cycle time for checking peers (e.g. 60, 1m, 1m30s)",
    )
    parser.add_argument(
        "--endpoint",
        help="Admin socket endpoint (unix://PATH, tcp://HOST:PORT or HOST:PORT)",
    )
    parser.add_argument(
        "--router",
        dest="routers",
        action="append",
        metavar="KEY",
        help="Trusted router public key (repeatable)",
    )
    parser.add_argument(
        "--peer",
        dest="peers",
        action="append",
        metavar="URI",
        help="Fallback peer URI to toggle (repeatable)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"peermand {__version__}",
    )

    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else "INFO")

    config_path = args.config or os.environ.get(ENV_PREFIX + "CONFIG") or DEFAULT_CONFIG_PATH
    logger.info(f"reading configuration from {config_path}")

    # Load configuration
    try:
        config = Config.load(Path(config_path), environ=os.environ)
        config.apply_overrides(
            looptime=args.looptime,
            endpoint=args.endpoint,
            routers=args.routers,
            peers=args.peers,
        )
        config.validate()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if not config.config_path.exists():
        logger.warning(f"{config.config_path} not found, using defaults and overrides")

    try:
        setup_logging("DEBUG" if args.verbose else config.log_level, config.log_file)
    except OSError as e:
        logger.error(f"Configuration error: cannot open log file: {e}")
        return 1

    daemon = PeerManDaemon(config)

    # Signal handlers
    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}")
        daemon.stop()

    previous = {
        signum: signal.signal(signum, handle_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        daemon.run(once=args.once)
    except AdminError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    logger.info("peermand stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
