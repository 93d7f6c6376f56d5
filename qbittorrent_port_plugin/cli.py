"""
Command-line entry point for the port plugin.

Settings come from QBITTORRENT_PORT_PLUGIN_* environment variables, optionally
read from a .env file. The first SIGINT/SIGTERM lets the current sync cycle
finish and then stops the loop; a second one exits immediately.

Usage:
    qbittorrent-port-plugin
    qbittorrent-port-plugin --once
    qbittorrent-port-plugin --env-file /config/port-plugin.env --log-level debug

Exit codes:
    0   stopped by a signal, or --once succeeded
    1   a sync cycle failed
    2   the configuration is invalid
    130 a second stop signal arrived, or --once was interrupted
"""

import argparse
import os
import signal
import threading
from typing import List, Optional

import dotenv

from .config import ENV_PREFIX, PluginConfig, load_config
from .exceptions import ConfigError, PortPluginError
from .logger import logger, setup_logging
from .port_syncer import PortSyncer
from .qbittorrent_client import QBittorrentClient


EXIT_OK = 0
EXIT_SYNC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_HARSH_STOP = 130

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """
    Signal handler that stops the loop on the first signal and exits on the next.

    The handler runs on the main thread, which may be holding the lock inside
    stop_event.wait() or in a loguru sink when the signal lands, so logging and
    setting the event happen on a helper thread.
    """

    def __init__(self, stop_event: threading.Event):
        self.stop_event = stop_event
        self.stop_requested = False

    def __call__(self, signum, frame):
        name = signal.Signals(signum).name
        if not self.stop_requested:
            self.stop_requested = True
            threading.Thread(target=self._request_stop, args=(name,), name="stop-signal", daemon=True).start()
            return

        logger.warning(f"received harsh stop signal ({name}), exiting...")
        raise SystemExit(EXIT_HARSH_STOP)

    def _request_stop(self, name: str) -> None:
        logger.info(f"received graceful stop signal ({name}), exiting...")
        self.stop_event.set()

    def install(self) -> None:
        for signum in STOP_SIGNALS:
            signal.signal(signum, self)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="qbittorrent-port-plugin",
        description="Keep qBittorrent's listening port in sync with a VPN forwarded port file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Environment variables (prefix {ENV_PREFIX}):
  PORT_FILE                  file holding the forwarded port (required)
  QBITTORRENT_API_NETLOC     e.g. http://localhost:8080 (required)
  QBITTORRENT_PASSWORD       WebUI password (required)
  QBITTORRENT_USERNAME       WebUI username (default: admin)
  REFRESH_INTERVAL_SECONDS   seconds between syncs (default: 5)
  ALLOW_PORT_FILE_NOT_EXIST  skip syncs while the port file is missing (default: true)
"""
    )
    parser.add_argument("--env-file", help="Read environment variables from this file")
    parser.add_argument("--once", action="store_true", help="Run a single sync and exit")
    parser.add_argument("--log-level", help="Override LOG_LEVEL (e.g. DEBUG, INFO)")
    return parser.parse_args(argv)


def log_config(config: PluginConfig) -> None:
    config = config.redacted()
    logger.info("loaded configuration")
    logger.info(f"  Port File                : {config.port_file}")
    logger.info(f"  Allow Port File Not Exist: {config.allow_port_file_not_exist}")
    logger.info(f"  Refresh Interval         : {config.refresh_interval_seconds}s")
    logger.info(f"  qBittorrent API          : {config.qbittorrent_api_netloc}")
    logger.info(f"  qBittorrent Username     : {config.qbittorrent_username}")
    logger.info(f"  qBittorrent Password     : {config.qbittorrent_password}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        if args.env_file:
            if not os.path.isfile(args.env_file):
                raise ConfigError(f"env file '{args.env_file}' does not exist")
            dotenv.load_dotenv(args.env_file)

        setup_logging(level=args.log_level)

        config = load_config()
        client = QBittorrentClient(
            config.qbittorrent_api_netloc,
            username=config.qbittorrent_username,
            password=config.qbittorrent_password,
        )
    except ConfigError as e:
        logger.error(f"failed to load configuration: {e}")
        return EXIT_CONFIG_ERROR

    log_config(config)

    syncer = PortSyncer(
        client,
        config.port_file,
        allow_port_file_not_exist=config.allow_port_file_not_exist,
    )

    with client:
        if args.once:
            try:
                syncer.reconcile_once()
            except PortPluginError as e:
                logger.error(f"failed to sync port: {e}")
                return EXIT_SYNC_ERROR
            except KeyboardInterrupt:
                logger.warning("interrupted during sync, exiting...")
                return EXIT_HARSH_STOP
            return EXIT_OK

        stop_event = threading.Event()
        ShutdownHandler(stop_event).install()

        logger.info("starting sync loop")
        try:
            syncer.run_loop(config.refresh_interval_seconds, stop_event)
        except PortPluginError as e:
            logger.error(f"failed to run sync loop: {e}")
            return EXIT_SYNC_ERROR

    logger.info("done")
    return EXIT_OK
