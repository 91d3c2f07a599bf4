"""Unit tests for InfluxDbMassSink."""

import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock, call, patch

import pytest

from mksrga_recorder.config import InfluxSinkConfig
from mksrga_recorder.influxdb_sink import InfluxDbMassSink


# Create mock influxdb_client module for tests
@pytest.fixture(autouse=True)
def mock_influxdb_client() -> MagicMock:
    """Mock the influxdb_client module for all tests."""
    mock_module = MagicMock()
    mock_module.InfluxDBClient = MagicMock()
    mock_module.Point = MagicMock()
    mock_module.client = MagicMock()
    mock_module.client.write_api = MagicMock()
    mock_module.client.write_api.WriteOptions = MagicMock()

    with patch.dict(sys.modules, {"influxdb_client": mock_module}):
        with patch.dict(
            sys.modules, {"influxdb_client.client.write_api": mock_module.client.write_api}
        ):
            yield mock_module


@pytest.fixture
def config() -> InfluxSinkConfig:
    """Create a sample config for testing."""
    return InfluxSinkConfig(
        url="http://localhost:8086",
        org="vacuum",
        bucket="rga",
        token="test-token",
    )


@pytest.fixture
def mock_client(mock_influxdb_client: MagicMock) -> MagicMock:
    """Client returned by InfluxDBClient, with an existing org and bucket."""
    client = MagicMock()
    client.organizations_api.return_value.find_organizations.return_value = [MagicMock()]
    mock_influxdb_client.InfluxDBClient.return_value = client
    return client


class TestStart:
    """Tests for InfluxDbMassSink.start."""

    def test_start_with_token_in_config(
        self,
        mock_influxdb_client: MagicMock,
        mock_client: MagicMock,
        config: InfluxSinkConfig,
    ) -> None:
        """Test start() with token provided in config."""
        sink = InfluxDbMassSink(config)
        sink.start()

        assert sink.is_running
        mock_influxdb_client.InfluxDBClient.assert_called_once_with(
            url="http://localhost:8086",
            token="test-token",
            org="vacuum",
            verify_ssl=True,
        )
        mock_influxdb_client.client.write_api.WriteOptions.assert_called_once_with(
            batch_size=500, flush_interval=1000
        )
        mock_client.buckets_api.return_value.create_bucket.assert_not_called()

        sink.stop()

    def test_start_with_token_from_env(
        self,
        mock_influxdb_client: MagicMock,
        mock_client: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test start() with token from environment variable."""
        monkeypatch.setenv("TEST_INFLUX_TOKEN", "env-token")
        config = InfluxSinkConfig(
            url="https://influx.lab.local:8086",
            org="vacuum",
            bucket="rga",
            token_env="TEST_INFLUX_TOKEN",
            skip_tls=True,
        )
        sink = InfluxDbMassSink(config)
        sink.start()

        mock_influxdb_client.InfluxDBClient.assert_called_once_with(
            url="https://influx.lab.local:8086",
            token="env-token",
            org="vacuum",
            verify_ssl=False,
        )

    def test_start_without_token_raises(
        self, mock_client: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test start() raises when no token is available."""
        monkeypatch.delenv("INFLUXDB_TOKEN", raising=False)
        sink = InfluxDbMassSink(InfluxSinkConfig(url="http://localhost:8086", org="o", bucket="b"))
        with pytest.raises(ValueError, match="No InfluxDB token configured"):
            sink.start()
        assert not sink.is_running

    def test_missing_bucket_created(self, mock_client: MagicMock, config: InfluxSinkConfig) -> None:
        """Test start() creates the bucket under the organization."""
        organization = MagicMock()
        mock_client.organizations_api.return_value.find_organizations.return_value = [organization]
        buckets_api = mock_client.buckets_api.return_value
        buckets_api.find_bucket_by_name.return_value = None

        InfluxDbMassSink(config).start()

        buckets_api.find_bucket_by_name.assert_called_once_with("rga")
        buckets_api.create_bucket.assert_called_once_with(bucket_name="rga", org=organization)

    def test_unknown_organization(self, mock_client: MagicMock, config: InfluxSinkConfig) -> None:
        """Test start() rejects an organization the server does not know."""
        mock_client.organizations_api.return_value.find_organizations.return_value = []
        sink = InfluxDbMassSink(config)
        with pytest.raises(ValueError, match="Invalid InfluxDB organization: vacuum"):
            sink.start()
        mock_client.close.assert_called_once()
        assert not sink.is_running

    def test_organization_lookup_failure(
        self, mock_client: MagicMock, config: InfluxSinkConfig
    ) -> None:
        """Test start() reports a failing organization lookup as invalid."""
        mock_client.organizations_api.return_value.find_organizations.side_effect = RuntimeError(
            "unauthorized"
        )
        with pytest.raises(ValueError, match="Invalid InfluxDB organization"):
            InfluxDbMassSink(config).start()
        mock_client.close.assert_called_once()

    def test_start_twice_is_noop(
        self,
        mock_influxdb_client: MagicMock,
        mock_client: MagicMock,
        config: InfluxSinkConfig,
    ) -> None:
        """Test a second start() does not reconnect."""
        sink = InfluxDbMassSink(config)
        sink.start()
        sink.start()
        mock_influxdb_client.InfluxDBClient.assert_called_once()


class TestWriteScan:
    """Tests for InfluxDbMassSink.write_scan."""

    def test_write_before_start(self, config: InfluxSinkConfig) -> None:
        """Test write_scan() raises if not started."""
        sink = InfluxDbMassSink(config)
        with pytest.raises(RuntimeError, match="Sink not started"):
            sink.write_scan([(1, 1.0e-10)], datetime.now(timezone.utc))

    def test_one_point_per_reading(
        self,
        mock_influxdb_client: MagicMock,
        mock_client: MagicMock,
        config: InfluxSinkConfig,
    ) -> None:
        """Test each reading becomes a tagged pressure point."""
        sink = InfluxDbMassSink(config)
        sink.start()
        timestamp = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

        sink.write_scan([(1, 2.1e-10), (2, 4.6e-09)], timestamp)

        point_cls = mock_influxdb_client.Point
        assert point_cls.call_args_list == [call("pressure"), call("pressure")]
        point = point_cls.return_value
        assert point.tag.call_args_list == [call("mass", "1"), call("mass", "2")]
        assert point.field.call_args_list == [call("pressure", 2.1e-10), call("pressure", 4.6e-09)]
        point.time.assert_called_with(timestamp)

        write_api = mock_client.write_api.return_value
        write_api.write.assert_called_once()
        kwargs = write_api.write.call_args.kwargs
        assert kwargs["bucket"] == "rga"
        assert kwargs["org"] == "vacuum"
        assert len(kwargs["record"]) == 2

    def test_custom_measurement(
        self, mock_influxdb_client: MagicMock, mock_client: MagicMock
    ) -> None:
        """Test the configured measurement name is used."""
        config = InfluxSinkConfig(
            url="http://localhost:8086", org="o", bucket="b", token="t", measurement="rga"
        )
        sink = InfluxDbMassSink(config)
        sink.start()
        sink.write_scan([(28, 1.6e-09)], datetime.now(timezone.utc))
        mock_influxdb_client.Point.assert_called_once_with("rga")


class TestStopAndHealth:
    """Tests for stop() and health_check()."""

    def test_stop_flushes_and_closes(
        self, mock_client: MagicMock, config: InfluxSinkConfig
    ) -> None:
        """Test stop() closes the write API and the client."""
        sink = InfluxDbMassSink(config)
        sink.start()
        sink.stop()

        mock_client.write_api.return_value.close.assert_called_once()
        mock_client.close.assert_called_once()
        assert not sink.is_running

    def test_stop_when_not_running(self, config: InfluxSinkConfig) -> None:
        """Test stop() is safe before start()."""
        InfluxDbMassSink(config).stop()

    def test_health_check(self, mock_client: MagicMock, config: InfluxSinkConfig) -> None:
        """Test health_check() reflects the client ping."""
        sink = InfluxDbMassSink(config)
        assert sink.health_check() is False
        sink.start()
        mock_client.ping.return_value = True
        assert sink.health_check() is True
        mock_client.ping.side_effect = ConnectionError("down")
        assert sink.health_check() is False
