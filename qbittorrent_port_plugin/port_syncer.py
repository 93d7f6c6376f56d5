"""
Port reconciliation between a VPN port file and qBittorrent.

The VPN client writes its forwarded port into a file. PortSyncer reads that
file on every cycle, asks qBittorrent for its current listening port and
only writes the new one when the two differ.

A missing port file can be tolerated (the VPN may not be connected yet), in
which case the cycle is skipped before qBittorrent is contacted. A file that
exists but does not hold a port is always an error.

Port file format: the whole file, stripped of surrounding whitespace, must be
one or more ASCII digits forming a number in [0, 65535]. "51413\\n" is
accepted, "+51413", "514 13" and "" are not.
"""

import os
import re
import threading
import time
from enum import Enum
from typing import Callable, Optional

from .exceptions import PortFileInvalidError, PortFileMissingError
from .logger import logger
from .qbittorrent_client import MAX_PORT, QBittorrentClient


PORT_PATTERN = re.compile(r"[0-9]+")


class LoopState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class PortSyncer:
    def __init__(
        self,
        client: QBittorrentClient,
        port_file: str,
        allow_port_file_not_exist: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.port_file = port_file
        self.allow_port_file_not_exist = allow_port_file_not_exist
        self.state = LoopState.IDLE
        self._clock = clock

    def read_desired_port(self) -> int:
        """
        Read the forwarded port from the port file.

        Raises:
            PortFileMissingError: If the file does not exist
            PortFileInvalidError: If the file cannot be read or does not hold a port
        """
        try:
            with open(self.port_file, 'rb') as f:
                raw = f.read()
        except FileNotFoundError as e:
            raise PortFileMissingError(f"port file '{self.port_file}' does not exist", self.port_file) from e
        except OSError as e:
            raise PortFileInvalidError(f"failed to read port file '{self.port_file}': {e}", self.port_file) from e

        try:
            text = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise PortFileInvalidError(f"port file '{self.port_file}' is not valid text: {e}", self.port_file) from e

        if not PORT_PATTERN.fullmatch(text):
            raise PortFileInvalidError(
                f"port file '{self.port_file}' contents '{text[:20]}' are not a port number", self.port_file
            )

        port = int(text)
        if port > MAX_PORT:
            raise PortFileInvalidError(
                f"port file '{self.port_file}' holds {port}, which is outside [0, {MAX_PORT}]", self.port_file
            )

        return port

    def reconcile_port(self, port: int) -> bool:
        """Make qBittorrent listen on port. Returns True if it had to be changed."""
        current = self.client.get_listening_port()
        if current == port:
            return False

        self.client.set_listening_port(port)
        return True

    def reconcile_once(self) -> bool:
        """
        Run one read-compare-write cycle.

        Returns:
            True if qBittorrent's listening port was changed, False otherwise
            (including when a tolerated missing port file skipped the cycle)
        """
        if not os.path.exists(self.port_file):
            if self.allow_port_file_not_exist:
                logger.info(f"port file '{self.port_file}' does not exist yet, skipping sync...")
                return False
            raise PortFileMissingError(f"port file '{self.port_file}' does not exist", self.port_file)

        port = self.read_desired_port()
        changed = self.reconcile_port(port)

        if changed:
            logger.info(f"Changed qBittorrent torrent port to {port}")
        else:
            logger.info(f"No change to qBittorrent torrent port (is: {port})")

        return changed

    def run_loop(self, interval: float, stop_event: Optional[threading.Event] = None) -> None:
        """
        Reconcile now, then once per interval until stop_event is set.

        Cycles never overlap. When a cycle outlasts the interval the missed
        ticks are dropped and the next cycle waits for the next scheduled one.
        stop_event is only checked between cycles, so a cycle that has started
        always runs to completion.

        Any error raised by a cycle stops the loop and is re-raised.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if stop_event is None:
            stop_event = threading.Event()

        self.state = LoopState.RUNNING
        logger.info(f"Port sync loop started (interval: {interval}s)")

        next_tick = self._clock()
        try:
            while True:
                self.reconcile_once()

                next_tick += interval
                now = self._clock()
                if next_tick <= now:
                    missed = int((now - next_tick) // interval) + 1
                    logger.debug(f"Sync cycle overran the interval, dropping {missed} tick(s)")
                    next_tick += missed * interval

                if stop_event.wait(next_tick - now):
                    break
        except Exception:
            self.state = LoopState.FAILED
            raise
        except BaseException:
            # Interrupted from outside (SystemExit, KeyboardInterrupt), not a failed cycle
            self.state = LoopState.STOPPED
            raise

        self.state = LoopState.STOPPED
        logger.info("Port sync loop stopped")
