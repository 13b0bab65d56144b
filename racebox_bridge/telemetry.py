"""Decoding of the 80-byte RaceBox data message into telemetry records."""

import struct
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from .protocol import FULL_PAYLOAD_LENGTH

# Little-endian layout of the full payload, offsets 0..79
PAYLOAD_FORMAT = struct.Struct("<IHbbbbbBIibBBbiiiiIIiiIIHBBhhhhhh")

MM_TO_FEET = 1e-3 * 3.28084
MM_PER_S_TO_MPH = 0.00223694
DEGREES_SCALE = 1e-7
HEADING_SCALE = 1e-5
G_FORCE_SCALE = 1000.0
ROTATION_RATE_SCALE = 100.0

FIX_STATUS_LABELS = {
    0: "no fix",
    2: "2D fix",
    3: "3D fix",
}
UNKNOWN_FIX_STATUS = "Error parsing fix status value"

VALIDITY_FLAG_LABELS = (
    (0x01, "valid date"),
    (0x02, "valid time"),
    (0x04, "fully resolved"),
    (0x08, "valid magnetic declination"),
)
NO_VALIDITY_FLAGS = "all validity flags false"


@dataclass(frozen=True)
class RawPayload:
    """Wire fields of the data message, unscaled."""

    itow: int
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    validity_flags: int
    time_accuracy: int
    nanoseconds: int
    fix_status: int
    fix_status_flags: int
    date_time_flags: int
    satellites: int
    longitude: int
    latitude: int
    wgs_altitude: int
    msl_altitude: int
    horizontal_accuracy: int
    vertical_accuracy: int
    speed: int
    heading: int
    speed_accuracy: int
    heading_accuracy: int
    pdop: int
    lat_long_flags: int
    battery_status: int
    g_force_x: int
    g_force_y: int
    g_force_z: int
    rotation_rate_x: int
    rotation_rate_y: int
    rotation_rate_z: int


@dataclass(frozen=True)
class TelemetryRecord:
    """One decoded, unit-converted telemetry sample."""

    timestamp: datetime | None
    fix_status: str
    validity_flags: str
    satellites: int
    longitude: float  # degrees
    latitude: float  # degrees
    altitude_ft: float
    speed_mph: float
    heading: float  # degrees
    battery_charging: bool
    battery_level: int  # percent
    g_force_x: float
    g_force_y: float
    g_force_z: float
    rotation_rate_x: float  # deg/s
    rotation_rate_y: float
    rotation_rate_z: float

    def to_dict(self) -> dict:
        """Return a JSON-serializable representation."""
        data = asdict(self)
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        return data


def parse_payload(payload: bytes) -> RawPayload:
    """Unpack the raw wire fields of a full payload."""
    if len(payload) != FULL_PAYLOAD_LENGTH:
        raise ValueError(
            f"payload must be {FULL_PAYLOAD_LENGTH} bytes, got {len(payload)}"
        )
    return RawPayload(*PAYLOAD_FORMAT.unpack(payload))


def fix_status_label(fix_status: int) -> str:
    return FIX_STATUS_LABELS.get(fix_status, UNKNOWN_FIX_STATUS)


def validity_flags_label(flags: int) -> str:
    """Describe the set validity bits, one per line."""
    labels = [label for bit, label in VALIDITY_FLAG_LABELS if flags & bit]
    if not labels:
        return NO_VALIDITY_FLAGS
    return "\n".join(labels)


def decode_battery(status: int) -> tuple[bool, int]:
    """Split the battery byte into (charging, level percent)."""
    return (status >> 7) == 1, status & 0x7F


def decode_timestamp(raw: RawPayload) -> datetime | None:
    """Build the UTC timestamp, or None if the date fields are not a valid date.

    The signed nanosecond field is a correction to the whole second and may
    be negative; it is truncated toward zero to microseconds. A correction
    that moves the time outside the datetime range also gives None.
    """
    try:
        base = datetime(
            raw.year,
            raw.month,
            raw.day,
            raw.hour,
            raw.minute,
            raw.second,
            tzinfo=timezone.utc,
        )
        return base + timedelta(microseconds=int(raw.nanoseconds / 1000))
    except (ValueError, OverflowError):
        return None


def interpret(payload: bytes) -> TelemetryRecord:
    """Decode a full 80-byte payload into a TelemetryRecord."""
    raw = parse_payload(payload)
    charging, level = decode_battery(raw.battery_status)
    return TelemetryRecord(
        timestamp=decode_timestamp(raw),
        fix_status=fix_status_label(raw.fix_status),
        validity_flags=validity_flags_label(raw.validity_flags),
        satellites=raw.satellites,
        longitude=raw.longitude * DEGREES_SCALE,
        latitude=raw.latitude * DEGREES_SCALE,
        altitude_ft=raw.wgs_altitude * MM_TO_FEET,
        speed_mph=raw.speed * MM_PER_S_TO_MPH,
        heading=raw.heading * HEADING_SCALE,
        battery_charging=charging,
        battery_level=level,
        g_force_x=raw.g_force_x / G_FORCE_SCALE,
        g_force_y=raw.g_force_y / G_FORCE_SCALE,
        g_force_z=raw.g_force_z / G_FORCE_SCALE,
        rotation_rate_x=raw.rotation_rate_x / ROTATION_RATE_SCALE,
        rotation_rate_y=raw.rotation_rate_y / ROTATION_RATE_SCALE,
        rotation_rate_z=raw.rotation_rate_z / ROTATION_RATE_SCALE,
    )
