"""Per-connection telemetry pipeline: chunks in, records out."""

import logging
import time
from collections.abc import Callable

from .protocol import Complete, FrameDecoder, Rejected
from .telemetry import TelemetryRecord, interpret

logger = logging.getLogger(__name__)

DEFAULT_LOW_BATTERY_LEVEL = 2  # percent


def decode_serial_number(data: bytes) -> str:
    """Decode the device information serial number characteristic."""
    return data.decode("utf-8", errors="replace")


class TelemetrySession:
    """Drives raw chunks from one device through decoding and interpretation."""

    def __init__(
        self,
        on_record: Callable[[TelemetryRecord], None],
        on_low_battery: Callable[[TelemetryRecord], None] | None = None,
        decoder: FrameDecoder | None = None,
        low_battery_level: int = DEFAULT_LOW_BATTERY_LEVEL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._on_record = on_record
        self._on_low_battery = on_low_battery
        self._decoder = decoder or FrameDecoder()
        self._low_battery_level = low_battery_level
        self._clock = clock
        self.serial_number: str | None = None
        self.latest: TelemetryRecord | None = None
        self.packet_count = 0
        self._started_at = clock()
        self._first_battery_read = True

    @property
    def decoder(self) -> FrameDecoder:
        return self._decoder

    @property
    def packet_rate(self) -> float:
        """Average records per second since the session started."""
        elapsed = self._clock() - self._started_at
        if elapsed <= 0:
            return 0.0
        return self.packet_count / elapsed

    def reset(self) -> None:
        """Forget all per-connection state."""
        self._decoder.reset()
        self.serial_number = None
        self.latest = None
        self.packet_count = 0
        self._started_at = self._clock()
        self._first_battery_read = True

    def set_serial_number(self, data: bytes) -> str:
        self.serial_number = decode_serial_number(data)
        logger.info("Device serial number: %s", self.serial_number)
        return self.serial_number

    def handle_chunk(self, data: bytes) -> TelemetryRecord | None:
        """Process one notification payload, returning a record if one completed."""
        result = self._decoder.submit(data)
        if isinstance(result, Rejected):
            logger.debug("Skipping chunk: %s", result.reason.value)
            return None
        if not isinstance(result, Complete):
            return None

        record = interpret(result.payload)
        self.latest = record
        self.packet_count += 1
        self._on_record(record)
        self._check_battery(record)
        return record

    def _check_battery(self, record: TelemetryRecord) -> None:
        # The first reading after a reconnect reports 0%
        if self._first_battery_read:
            self._first_battery_read = False
            return
        if record.battery_charging or record.battery_level > self._low_battery_level:
            return
        logger.warning("Battery at %d%%", record.battery_level)
        if self._on_low_battery is not None:
            self._on_low_battery(record)
