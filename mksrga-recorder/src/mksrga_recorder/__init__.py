"""Periodic RGA scan recorder.

This package drives an MKS residual gas analyzer through
:mod:`mksrga_protocol` to record a barchart scan at a fixed interval. It
includes:

- YAML configuration loading
- The recording loop producing one JSON frame per scan
- An optional InfluxDB sink storing every mass reading
- Command-line entry points for the recorder and the emulator server

Typical usage::

    from mksrga_protocol import RgaSession, TcpTransport
    from mksrga_recorder import RgaRecorder, load_config

    config = load_config()
    transport = TcpTransport.from_address(config.rga_address)
    transport.open()
    recorder = RgaRecorder(RgaSession(transport), config)
    frames = recorder.start_record()
"""

__version__ = "1.0.0"

from mksrga_recorder.config import (  # noqa: E402
    InfluxSinkConfig,
    RecorderConfig,
    default_config_path,
    load_config,
    parse_config,
)
from mksrga_recorder.influxdb_sink import InfluxDbMassSink  # noqa: E402
from mksrga_recorder.recorder import (  # noqa: E402
    MassSink,
    RecorderStateError,
    RgaRecorder,
    ScanFrame,
    collect_scan,
    encode_readings,
)

__all__ = [
    "__version__",
    # Configuration
    "InfluxSinkConfig",
    "RecorderConfig",
    "default_config_path",
    "load_config",
    "parse_config",
    # Sink
    "InfluxDbMassSink",
    # Recorder
    "MassSink",
    "RecorderStateError",
    "RgaRecorder",
    "ScanFrame",
    "collect_scan",
    "encode_readings",
]
