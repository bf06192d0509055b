"""
Command line entry point: keep a session to one sensor and serve its readings.

Usage:
    envsense --address AA:BB:CC:DD:EE:FF
    ENVSENSE_ADDRESS=AA:BB:CC:DD:EE:FF python -m envsense --mode poll --no-web
"""
import argparse
import logging
import signal
import sys
import threading

from pubsub import pub

from envsense.config import DeviceConfig
from envsense.interfaces.ble import SensorInterface
from envsense.interfaces.ble.constants import (
    ADDRESS_TYPES,
    INGESTION_MODES,
    SECURITY_LEVELS,
)
from envsense.web import run_web_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envsense",
        description="Read temperature, pressure and humidity from a BLE Environmental Sensing peripheral.",
    )
    parser.add_argument(
        "--address", help="Peripheral address (default: $ENVSENSE_ADDRESS)."
    )
    parser.add_argument("--address-type", choices=ADDRESS_TYPES)
    parser.add_argument("--security", choices=SECURITY_LEVELS)
    parser.add_argument(
        "--mode",
        dest="ingestion",
        choices=INGESTION_MODES,
        help="How readings are fetched: subscribe to notifications or poll.",
    )
    parser.add_argument("--poll-interval", type=float, metavar="SECONDS")
    parser.add_argument("--reconnect-delay", type=float, metavar="SECONDS")
    parser.add_argument(
        "--discovery-timeout",
        type=float,
        metavar="SECONDS",
        help="Drop a connection whose service discovery has not finished in time.",
    )
    parser.add_argument("--host", dest="http_host", help="HTTP bind address.")
    parser.add_argument("--port", dest="http_port", type=int, help="HTTP port.")
    parser.add_argument(
        "--no-web", action="store_true", help="Only run the BLE session and log readings."
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true")
    verbosity.add_argument("-q", "--quiet", action="store_true")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    if not verbose:
        logging.getLogger("bleak").setLevel(logging.WARNING)
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def on_connection_change(interface, connected):
    logger.info(
        "Connection changed for %s: %s",
        interface.config.address,
        "Connected" if connected else "Disconnected",
    )


def _raise_interrupt(signum, _frame):
    raise KeyboardInterrupt(f"signal {signum}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    overrides = {
        name: getattr(args, name)
        for name in (
            "address",
            "address_type",
            "security",
            "ingestion",
            "poll_interval",
            "reconnect_delay",
            "discovery_timeout",
            "http_host",
            "http_port",
        )
    }
    try:
        config = DeviceConfig.from_env(**overrides)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    pub.subscribe(on_connection_change, "envsense.connection.status")
    signal.signal(signal.SIGTERM, _raise_interrupt)

    iface = SensorInterface(config)
    iface.start()
    try:
        if args.no_web:
            threading.Event().wait()
        else:
            run_web_app(iface, host=config.http_host, port=config.http_port)
    except KeyboardInterrupt:
        logger.info("Exiting...")
    finally:
        iface.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
