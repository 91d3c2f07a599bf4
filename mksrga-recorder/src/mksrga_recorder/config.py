"""YAML configuration loading for the RGA recorder.

The configuration file keeps the key names used by the deployed recorder, so
existing files keep working.

Example YAML configuration:
    RGAAddr: "192.168.1.50:10014"
    PollingInterval: 30
    SensorSerial: "LM70-00197021"
    Influx: true
    InfluxURL: "https://influx.lab.local:8086"
    InfluxAPIToken: "s3cr3t"
    InfluxOrgName: "vacuum"
    InfluxBucketName: "rga"
    InfluxSkipTLS: false
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_DIR = Path("~/.fmtd")
DEFAULT_CONFIG_NAME = "mks.yaml"

MIN_POLLING_INTERVAL = 15.0


def default_config_path() -> Path:
    """Return the default configuration file location (``~/.fmtd/mks.yaml``)."""
    return (DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_NAME).expanduser()


@dataclass(frozen=True)
class InfluxSinkConfig:
    """Connection settings for the InfluxDB sink.

    Attributes:
        url: InfluxDB server URL (e.g., "http://localhost:8086").
        org: InfluxDB organization name.
        bucket: Bucket receiving the readings; created when missing.
        token: API token. If None, read from ``token_env`` when the sink
            starts.
        token_env: Environment variable holding the token.
        skip_tls: Disable TLS certificate verification.
        measurement: Measurement name of every point.
    """

    url: str
    org: str
    bucket: str
    token: str | None = None
    token_env: str = "INFLUXDB_TOKEN"
    skip_tls: bool = False
    measurement: str = "pressure"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.url:
            raise ValueError("InfluxDB URL cannot be blank")
        if not self.org or not self.bucket:
            raise ValueError("InfluxDB organization or bucket cannot be blank")

    def resolve_token(self) -> str:
        """Return the configured token, falling back to the environment.

        Raises:
            ValueError: If no token is configured.
        """
        token = self.token or os.environ.get(self.token_env)
        if not token:
            raise ValueError(
                f"No InfluxDB token configured. Set InfluxAPIToken or "
                f"environment variable {self.token_env}"
            )
        return token


@dataclass(frozen=True)
class RecorderConfig:
    """Configuration for the RGA recorder.

    Attributes:
        rga_address: Instrument address as ``host[:port]``.
        polling_interval: Seconds between scans. Values below the 15 s
            minimum (including 0) are raised to it, see
            :attr:`effective_interval`.
        sensor_serial: Sensor to select before taking control, or None to
            use the server's current selection.
        influx: InfluxDB sink settings, or None to disable the sink.
    """

    rga_address: str
    polling_interval: float = 0.0
    sensor_serial: str | None = None
    influx: InfluxSinkConfig | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.rga_address:
            raise ValueError("RGA address cannot be blank")
        if self.polling_interval < 0:
            raise ValueError("polling_interval must be >= 0")

    @property
    def effective_interval(self) -> float:
        """Polling interval in seconds, never below the 15 s minimum."""
        return max(self.polling_interval, MIN_POLLING_INTERVAL)


def _get_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _get_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def parse_config(data: Any) -> RecorderConfig:
    """Build a :class:`RecorderConfig` from parsed YAML data.

    Args:
        data: The parsed YAML document.

    Returns:
        The recorder configuration.

    Raises:
        ValueError: If the document is not a mapping or a field is invalid.
    """
    if not isinstance(data, dict):
        raise ValueError("Config must be a YAML mapping")

    address = _get_str(data, "RGAAddr")
    if not address:
        raise ValueError("Missing required field: RGAAddr")

    interval = data.get("PollingInterval", 0) or 0
    if isinstance(interval, bool) or not isinstance(interval, (int, float)):
        raise ValueError("PollingInterval must be a number of seconds")

    influx: InfluxSinkConfig | None = None
    if _get_bool(data, "Influx"):
        influx = InfluxSinkConfig(
            url=_get_str(data, "InfluxURL"),
            org=_get_str(data, "InfluxOrgName"),
            bucket=_get_str(data, "InfluxBucketName"),
            token=_get_str(data, "InfluxAPIToken") or None,
            skip_tls=_get_bool(data, "InfluxSkipTLS"),
        )
        influx.resolve_token()

    return RecorderConfig(
        rga_address=address,
        polling_interval=float(interval),
        sensor_serial=_get_str(data, "SensorSerial") or None,
        influx=influx,
    )


def load_config(path: str | Path | None = None) -> RecorderConfig:
    """Load recorder configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. Defaults to
            :func:`default_config_path`.

    Returns:
        Parsed recorder configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config is invalid or missing required fields.
    """
    path = Path(path) if path is not None else default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return parse_config(data)
