import pytest

from racebox_bridge.telemetry import PAYLOAD_FORMAT, RawPayload

DEFAULT_FIELDS = dict(
    itow=118286000,
    year=2022,
    month=9,
    day=13,
    hour=18,
    minute=51,
    second=26,
    validity_flags=0x07,
    time_accuracy=25,
    nanoseconds=250_000_000,
    fix_status=3,
    fix_status_flags=0x01,
    date_time_flags=0xE0,
    satellites=11,
    longitude=-1220842000,
    latitude=374220000,
    wgs_altitude=30480,
    msl_altitude=62000,
    horizontal_accuracy=1200,
    vertical_accuracy=1800,
    speed=1000,
    heading=9000000,
    speed_accuracy=300,
    heading_accuracy=120000,
    pdop=150,
    lat_long_flags=0,
    battery_status=0x96,
    g_force_x=-3,
    g_force_y=12,
    g_force_z=1002,
    rotation_rate_x=150,
    rotation_rate_y=-75,
    rotation_rate_z=0,
)


def build_payload(**overrides) -> bytes:
    """Pack an 80-byte data message from field values."""
    fields = {**DEFAULT_FIELDS, **overrides}
    values = (fields[name] for name in RawPayload.__dataclass_fields__)
    return PAYLOAD_FORMAT.pack(*values)


@pytest.fixture
def payload() -> bytes:
    return build_payload()
