#!/usr/bin/env python3
# tools/breaker_monitor.py
"""
Breaker Monitor - command line front end for the breaker engine.

Runs the engine against either a device bridge over TCP or the synthetic
telemetry feed, logging the breaker table whenever it changes.

Usage:
    python tools/breaker_monitor.py --synthetic
    python tools/breaker_monitor.py --host 192.168.4.1 --port 7000 --profile text_v1
    python tools/breaker_monitor.py --show-history
    python tools/breaker_monitor.py --clear-history
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from breakerlink.core.errors import BreakerLinkError, TransportError  # noqa: E402
from breakerlink.core.logging_system import configure_logging  # noqa: E402
from breakerlink.engine.breaker_engine import BreakerEngine  # noqa: E402
from breakerlink.engine.connection import MonitorConnection  # noqa: E402
from breakerlink.engine.transport import open_tcp_transport  # noqa: E402
from breakerlink.simulation.synthetic_telemetry import (  # noqa: E402
    SyntheticFeed,
    SyntheticParameters,
    SyntheticTelemetryGenerator,
)
from config.config_loader import ConfigLoader  # noqa: E402

logger = logging.getLogger("breaker_monitor")


class BreakerMonitor:
    """Wires configuration, engine and telemetry source together."""

    def __init__(self, config: dict, args: argparse.Namespace):
        self.config = config
        self.args = args
        self.engine = BreakerEngine.from_config(config)
        self._shutdown_event = asyncio.Event()
        self._last_table = None

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def log_table_if_changed(self) -> None:
        table = self.engine.snapshot()
        if table == self._last_table:
            return
        self._last_table = table
        for breaker in table:
            state = "ON " if breaker.is_on else "OFF"
            reason = (
                f" ({breaker.last_trip_reason.value})"
                if breaker.last_trip_reason and not breaker.is_on
                else ""
            )
            logger.info(
                f"  [{state}] {breaker.name:<16} "
                f"{breaker.measurement1_label or 'm1'}={breaker.measurement1:.3f} "
                f"{breaker.measurement2_label or 'm2'}={breaker.measurement2:.3f}{reason}"
            )

    async def _watch(self, connection: MonitorConnection | None = None) -> None:
        while not self._shutdown_event.is_set():
            if connection is not None and not connection.is_connected:
                return
            self.log_table_if_changed()
            await asyncio.sleep(0.25)

    async def run_synthetic(self) -> None:
        sim = self.config["simulation"]
        params = SyntheticParameters(
            interval=sim["interval"],
            seed=sim["seed"],
            fault_probability=sim["fault_probability"],
            nominal_current=sim["nominal_current"],
            supply_voltage=sim["supply_voltage"],
        )
        feed = SyntheticFeed(self.engine, SyntheticTelemetryGenerator(params))

        # The simulated device starts with every breaker on
        for breaker in self.engine.snapshot():
            self.engine.request_toggle(breaker.breaker_id, True, user="breaker_monitor")

        await feed.start()
        try:
            await self._watch()
        finally:
            await feed.stop()

    async def run_connection(self) -> None:
        conn_cfg = self.config["connection"]
        transport = await open_tcp_transport(
            conn_cfg["host"],
            conn_cfg["port"],
            timeout=conn_cfg["connect_timeout"],
            read_size=conn_cfg["read_size"],
        )
        connection = MonitorConnection(self.engine, transport)
        await connection.start()
        try:
            await self._watch(connection)
        finally:
            await connection.stop()
        if connection.closed_reason:
            logger.info(f"Connection closed: {connection.closed_reason}")

    async def run(self) -> None:
        self.setup_signal_handlers()
        logger.info(f"Engine ready: {self.engine}")
        if self.args.synthetic:
            await self.run_synthetic()
        else:
            await self.run_connection()


def show_history(engine: BreakerEngine) -> None:
    entries = engine.history_snapshot()
    if not entries:
        print("No history entries")
        return
    for entry in entries:
        print(f"{entry.timestamp}  {entry.breaker_name:<16} {entry.type.value:<12} {entry.reason}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Breaker Monitor - telemetry decoding and fault detection",
        epilog="""
Examples:
  %(prog)s --synthetic
  %(prog)s --host 192.168.4.1 --port 7000 --profile binary_v1
  %(prog)s --show-history
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config-dir", default="config", help="Directory holding the YAML config files"
    )
    parser.add_argument(
        "--synthetic", action="store_true", help="Use generated telemetry instead of a device"
    )
    parser.add_argument("--host", help="Device bridge host (overrides connection.yml)")
    parser.add_argument("--port", type=int, help="Device bridge port (overrides connection.yml)")
    parser.add_argument(
        "--profile",
        choices=["binary_v1", "text_v1", "text_v2_grace"],
        help="Protocol revision (overrides protocol.yml)",
    )
    parser.add_argument(
        "--clear-history", action="store_true", help="Clear the breaker history and exit"
    )
    parser.add_argument(
        "--show-history", action="store_true", help="Print the breaker history and exit"
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config = ConfigLoader(args.config_dir).load_all()
    if args.host:
        config["connection"]["host"] = args.host
    if args.port:
        config["connection"]["port"] = args.port
    if args.profile:
        config["protocol"]["profile"] = args.profile

    log_cfg = config["logging"]
    logging.basicConfig(
        level=logging.getLevelName(str(log_cfg["level"]).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    configure_logging(log_dir=log_cfg["log_dir"], level=log_cfg["level"])

    try:
        if args.show_history or args.clear_history:
            engine = BreakerEngine.from_config(config)
            if args.clear_history:
                engine.clear_history()
                print("History cleared")
            else:
                show_history(engine)
            return 0

        monitor = BreakerMonitor(config, args)
        await monitor.run()
    except TransportError as e:
        logger.error(f"Device link error: {e}")
        return 1
    except BreakerLinkError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    logger.info("Breaker monitor stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
