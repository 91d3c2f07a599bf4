"""Command-line interface for mksrga-recorder.

Usage:
    # Record from the instrument configured in ~/.fmtd/mks.yaml
    mksrga-record

    # Record with an explicit config, against the built-in emulator
    mksrga-record --config ./mks.yaml --emulate --debug

    # Serve an emulated RGA on the standard port
    mksrga-emulator --host 0.0.0.0 --port 10014
"""

from __future__ import annotations

import argparse
import logging
import sys

from mksrga_protocol import (
    EmulatorServer,
    RgaError,
    RgaSession,
    TcpTransport,
    make_microvision_emulator,
)
from mksrga_protocol.transport import DEFAULT_PORT, RgaTransport

from mksrga_recorder.config import RecorderConfig, default_config_path, load_config
from mksrga_recorder.influxdb_sink import InfluxDbMassSink
from mksrga_recorder.recorder import RgaRecorder

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def open_transport(config: RecorderConfig, emulate: bool = False) -> RgaTransport:
    """Open the instrument connection, or an in-process emulator.

    Raises:
        TransportError: If the instrument cannot be reached.
        ValueError: If the configured address is malformed.
    """
    if emulate:
        logger.info("Using the built-in RGA emulator")
        return make_microvision_emulator()
    transport = TcpTransport.from_address(config.rga_address)
    transport.open()
    logger.info("Connected to RGA at %s:%d", transport.host, transport.port)
    return transport


def cmd_record(args: argparse.Namespace) -> int:
    """Record scans until interrupted, printing one JSON line per scan."""
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        transport = open_transport(config, emulate=args.emulate)
    except (RgaError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    sink = InfluxDbMassSink(config.influx) if config.influx is not None else None
    with RgaSession(transport) as session:
        recorder = RgaRecorder(session, config, sink)
        try:
            frames = recorder.start_record()
        except (RgaError, ImportError, RuntimeError, ValueError) as exc:
            print(f"Error: could not start recording: {exc}", file=sys.stderr)
            return 1

        try:
            while True:
                frame = frames.get()
                if frame is None:
                    break
                print(frame.payload.decode("utf-8"), flush=True)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        finally:
            recorder.stop()
    return 0


def cmd_emulator(args: argparse.Namespace) -> int:
    """Serve an emulated RGA over TCP until interrupted."""
    server = EmulatorServer(make_microvision_emulator(args.serial), host=args.host, port=args.port)
    host, port = server.address
    print(f"RGA emulator listening on {host}:{port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


def main() -> int:
    """Entry point of ``mksrga-record``."""
    parser = argparse.ArgumentParser(description="Record RGA barchart scans")
    parser.add_argument(
        "--config", "-c", default=str(default_config_path()),
        help="Path to the YAML config (default: ~/.fmtd/mks.yaml)"
    )
    parser.add_argument(
        "--emulate", action="store_true",
        help="Record from the built-in emulator instead of RGAAddr"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(args.debug)
    return cmd_record(args)


def emulator_main() -> int:
    """Entry point of ``mksrga-emulator``."""
    parser = argparse.ArgumentParser(description="Serve an emulated MKS RGA over TCP")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Bind port (default: {DEFAULT_PORT})"
    )
    parser.add_argument(
        "--serial", default="LM70-00197021",
        help="Serial number of the emulated sensor"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(args.debug)
    return cmd_emulator(args)


if __name__ == "__main__":
    sys.exit(main())
