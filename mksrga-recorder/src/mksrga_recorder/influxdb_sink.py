"""InfluxDB sink for RGA mass readings."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from mksrga_recorder.config import InfluxSinkConfig

logger = logging.getLogger(__name__)


class InfluxDbMassSink:  # pylint: disable=too-many-instance-attributes
    """Write the mass readings of each scan to InfluxDB.

    Point structure:
        Measurement: pressure (configurable)
        Tags:
            - mass: Mass position of the reading
        Fields:
            - pressure: Partial pressure reading
        Timestamp: Start of the poll cycle the scan belongs to

    Example Flux query:
        from(bucket: "rga")
          |> range(start: -1d)
          |> filter(fn: (r) => r._measurement == "pressure")
          |> filter(fn: (r) => r.mass == "28")
    """

    def __init__(
        self,
        config: InfluxSinkConfig,
        batch_size: int = 500,
        flush_interval_ms: int = 1000,
    ) -> None:
        """Initialize the sink.

        Args:
            config: InfluxDB connection settings.
            batch_size: Number of points buffered before a write.
            flush_interval_ms: Maximum time between writes in milliseconds.
        """
        self._config = config
        self._batch_size = batch_size
        self._flush_interval_ms = flush_interval_ms
        self._running = False
        self._client: Any = None  # InfluxDBClient when influxdb-client is installed
        self._write_api: Any = None  # WriteApi when influxdb-client is installed

    @property
    def config(self) -> InfluxSinkConfig:
        """The sink configuration."""
        return self._config

    @property
    def is_running(self) -> bool:
        """Return True if the sink accepts readings."""
        return self._running

    def start(self) -> None:
        """Connect, check the organization and create the bucket if missing.

        Raises:
            ImportError: If influxdb-client is not installed.
            ValueError: If no token is configured or the organization does
                not exist.
        """
        if self._running:
            return

        # influxdb-client is only required once a sink is started
        try:
            # pylint: disable=import-outside-toplevel
            from influxdb_client import InfluxDBClient
            from influxdb_client.client.write_api import (  # type: ignore[import-not-found]
                WriteOptions,
            )
        except ImportError as e:
            raise ImportError(
                "influxdb-client is required for InfluxDbMassSink. "
                "Install with: pip install influxdb-client"
            ) from e

        token = self._config.resolve_token()
        client = InfluxDBClient(
            url=self._config.url,
            token=token,
            org=self._config.org,
            verify_ssl=not self._config.skip_tls,
        )
        try:
            self._ensure_bucket(client)
        except Exception:
            client.close()
            raise

        self._client = client
        self._write_api = client.write_api(
            write_options=WriteOptions(
                batch_size=self._batch_size,
                flush_interval=self._flush_interval_ms,
            )
        )
        self._running = True
        logger.info("InfluxDB sink writing to %s/%s", self._config.org, self._config.bucket)

    def write_scan(self, readings: Sequence[tuple[int, float]], timestamp: datetime) -> None:
        """Write one point per ``(mass, value)`` reading.

        Args:
            readings: Mass readings of one scan.
            timestamp: Timestamp shared by every point of the scan.

        Raises:
            RuntimeError: If the sink is not started.
        """
        if not self._running or self._write_api is None:
            raise RuntimeError("Sink not started")

        # Point comes from the same optional client package
        # pylint: disable=import-outside-toplevel
        from influxdb_client import Point  # type: ignore[import-not-found]

        points: list[Any] = []
        for mass, value in readings:
            point = Point(self._config.measurement)
            point.tag("mass", str(mass))
            point.field("pressure", float(value))
            point.time(timestamp)
            points.append(point)

        self._write_api.write(bucket=self._config.bucket, org=self._config.org, record=points)

    def stop(self) -> None:
        """Flush buffered points and close the client."""
        if not self._running:
            return

        if self._write_api is not None:
            self._write_api.close()
            self._write_api = None

        if self._client is not None:
            self._client.close()
            self._client = None

        self._running = False

    def health_check(self) -> bool:
        """Check if the InfluxDB connection is healthy.

        Returns:
            True if connected and healthy, False otherwise.
        """
        if self._client is None:
            return False

        try:
            return bool(self._client.ping())
        except Exception:  # pylint: disable=broad-exception-caught
            return False

    def _ensure_bucket(self, client: Any) -> None:
        try:
            organizations = client.organizations_api().find_organizations(org=self._config.org)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise ValueError(f"Invalid InfluxDB organization: {self._config.org}") from exc
        if not organizations:
            raise ValueError(f"Invalid InfluxDB organization: {self._config.org}")
        buckets_api = client.buckets_api()
        if buckets_api.find_bucket_by_name(self._config.bucket) is None:
            logger.info("Creating %s bucket...", self._config.bucket)
            buckets_api.create_bucket(bucket_name=self._config.bucket, org=organizations[0])
