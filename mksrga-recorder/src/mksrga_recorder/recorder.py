"""Periodic barchart recording from an RGA.

:class:`RgaRecorder` prepares a 1-200 amu barchart scan on the instrument and
then, once per polling interval, runs one scan, collects its mass readings,
hands them to an optional sink and queues a JSON :class:`ScanFrame` for the
consumer.

Example:
    >>> recorder = RgaRecorder(session, config)
    >>> frames = recorder.start_record()
    >>> frame = frames.get()
    >>> recorder.stop()
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from mksrga_protocol import (
    FilterMode,
    OnOff,
    RgaError,
    RgaSession,
    SensorState,
    SessionState,
    UnknownEventError,
)

from mksrga_recorder import __version__
from mksrga_recorder.config import RecorderConfig

logger = logging.getLogger(__name__)

RECORDER_NAME = "mksrga-recorder"
MEASUREMENT_NAME = "Bar1"
START_MASS = 1
END_MASS = 200
ACCURACY = 5


class RecorderStateError(RuntimeError):
    """Raised when the recorder is started or stopped in the wrong state."""


class MassSink(Protocol):
    """Destination for the readings of each scan."""

    def start(self) -> None:
        """Prepare the sink; called once before recording begins."""
        ...

    def write_scan(self, readings: Sequence[tuple[int, float]], timestamp: datetime) -> None:
        """Store the ``(mass, value)`` readings of one scan."""
        ...

    def stop(self) -> None:
        """Flush and release the sink."""
        ...


@dataclass(frozen=True)
class ScanFrame:
    """One scan's readings, serialized for a consumer.

    Attributes:
        source: Name of the producer.
        type: MIME type of :attr:`payload`.
        timestamp_ms: Start of the poll cycle, in Unix milliseconds.
        payload: ``{"data": [{"name": "mass 1", "value": ...}, ...]}`` as
            UTF-8 JSON.
    """

    source: str
    type: str
    timestamp_ms: int
    payload: bytes

    def data(self) -> list[dict[str, Any]]:
        """Decode the payload into its list of name/value readings."""
        decoded: dict[str, list[dict[str, Any]]] = json.loads(self.payload)
        return decoded["data"]


def encode_readings(readings: Sequence[tuple[int, float]]) -> bytes:
    """Serialize readings as the JSON frame payload."""
    data = [{"name": f"mass {mass}", "value": value} for mass, value in readings]
    return json.dumps({"data": data}).encode("utf-8")


def collect_scan(
    session: RgaSession,
    end_mass: int,
    stop: threading.Event | None = None,
) -> list[tuple[int, float]]:
    """Drain scan events until the reading at *end_mass* arrives.

    Events other than ``MassReading`` are skipped, including frames the
    classifier does not recognize (e.g. ``FilamentStatus``).

    Args:
        session: Session with a scan in progress.
        end_mass: Last mass of the scan.
        stop: Optional cancellation flag checked between reads.

    Returns:
        The ``(mass, value)`` readings in arrival order. Shorter than a full
        scan only if *stop* was set.

    Raises:
        RgaError: If the stream fails or delivers a malformed frame.
    """
    readings: list[tuple[int, float]] = []
    while stop is None or not stop.is_set():
        try:
            event = session.read_event()
        except UnknownEventError as exc:
            logger.debug("Skipping unrecognized event: %s", exc)
            continue
        if not event.is_mass_reading:
            logger.debug("Skipping event %s", event)
            continue
        mass = event["MassPosition"].as_int()
        readings.append((mass, event["Value"].as_float()))
        if mass == end_mass:
            break
    return readings


class RgaRecorder:  # pylint: disable=too-many-instance-attributes
    """Record a barchart scan from an RGA at a fixed interval.

    Args:
        session: Open session to the instrument.
        config: Recorder configuration.
        sink: Optional destination for every scan's readings.
        interval: Seconds between scans. Defaults to the configuration's
            effective interval.
    """

    def __init__(
        self,
        session: RgaSession,
        config: RecorderConfig,
        sink: MassSink | None = None,
        interval: float | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._sink = sink
        self._interval = config.effective_interval if interval is None else interval
        self._state_lock = threading.Lock()
        self._recording = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_recording(self) -> bool:
        """Return True while the recording loop runs."""
        with self._state_lock:
            return self._recording

    @property
    def interval(self) -> float:
        """Seconds between scans."""
        return self._interval

    def start_record(self) -> queue.Queue[ScanFrame | None]:
        """Prepare the instrument and start the recording loop.

        If a step fails after control was taken, the sensor is released
        before the error propagates.

        Returns:
            Queue receiving one :class:`ScanFrame` per scan, then ``None``
            once the loop has ended.

        Raises:
            RecorderStateError: If already recording or the sensor is not in
                use by this recorder after taking control.
            RgaError: If preparing the instrument fails.
            ValueError: If the sink cannot be started.
        """
        with self._state_lock:
            if self._recording:
                raise RecorderStateError("already recording")
            previous, self._thread = self._thread, None
        # a stopped loop may still be releasing the sensor
        if previous is not None:
            previous.join()
        with self._state_lock:
            if self._recording:
                raise RecorderStateError("already recording")
            self._recording = True

        try:
            self._prepare()
            if self._sink is not None:
                self._sink.start()
        except Exception:
            if self._session.state is SessionState.CONTROLLED:
                self._release()
            with self._state_lock:
                self._recording = False
            raise

        frames: queue.Queue[ScanFrame | None] = queue.Queue()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(frames,), name=RECORDER_NAME, daemon=True
        )
        self._thread.start()
        logger.info("Recording started, polling every %.1f s", self._interval)
        return frames

    def stop_record(self) -> None:
        """Ask the recording loop to end after the current cycle.

        Raises:
            RecorderStateError: If not recording.
        """
        with self._state_lock:
            if not self._recording:
                raise RecorderStateError("already stopped recording")
            self._recording = False
        self._stop_event.set()

    def stop(self) -> None:
        """End the recording loop, if any, and wait for it to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def poll_once(self) -> ScanFrame:
        """Run one scan and package its readings.

        Returns:
            The frame for this scan.

        Raises:
            RgaError: If the instrument rejects the scan or the stream fails.
        """
        now = datetime.now(timezone.utc)
        with self._session.lock:
            self._session.scan_resume(1)
            readings = collect_scan(self._session, END_MASS)
        if self._sink is not None:
            self._sink.write_scan(readings, now)
        logger.debug("Scan complete with %d readings", len(readings))
        return ScanFrame(
            source=RECORDER_NAME,
            type="application/json",
            timestamp_ms=int(now.timestamp() * 1000),
            payload=encode_readings(readings),
        )

    # -- Private helpers -----------------------------------------------------

    def _prepare(self) -> None:
        session = self._session
        with session.lock:
            session.init_msg()
            if self._config.sensor_serial:
                session.select(self._config.sensor_serial)
            session.control(RECORDER_NAME, __version__)
            state = session.sensor_state()["State"]
            if str(state) != SensorState.IN_USE.value:
                raise RecorderStateError(f"Sensor not ready: {state}")
            session.measurement_remove_all()
            session.add_barchart(
                MEASUREMENT_NAME, START_MASS, END_MASS, FilterMode.PEAK_CENTER, ACCURACY, 0, 0, 0
            )
            session.scan_add(MEASUREMENT_NAME)

    def _run(self, frames: queue.Queue[ScanFrame | None]) -> None:
        try:
            while not self._stop_event.wait(self._interval):
                try:
                    frame = self.poll_once()
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    logger.error("Poll cycle aborted: %s", exc)
                    break
                frames.put(frame)
        finally:
            self._shutdown()
            with self._state_lock:
                self._recording = False
            frames.put(None)
            logger.info("Recording stopped")

    def _release(self) -> None:
        with self._session.lock:
            try:
                self._session.release()
            except RgaError as exc:
                logger.warning("Could not release sensor: %s", exc)

    def _shutdown(self) -> None:
        with self._session.lock:
            try:
                self._session.filament_control(OnOff.OFF)
            except RgaError as exc:
                logger.warning("Could not turn filament off: %s", exc)
        self._release()
        if self._sink is not None:
            try:
                self._sink.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.warning("Could not stop sink: %s", exc)
