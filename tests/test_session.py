from conftest import build_payload

from racebox_bridge.protocol import FrameDecoder, encode_frame, split_payload
from racebox_bridge.session import TelemetrySession, decode_serial_number


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def make_session(clock=None, **kwargs):
    records = []
    low = []
    session = TelemetrySession(
        on_record=records.append,
        on_low_battery=low.append,
        clock=clock or FakeClock(),
        **kwargs,
    )
    return session, records, low


def test_full_frame_emits_record(payload):
    session, records, _ = make_session()
    record = session.handle_chunk(encode_frame(payload))
    assert record is not None
    assert records == [record]
    assert session.latest is record
    assert session.packet_count == 1


def test_fragments_emit_one_record(payload):
    session, records, _ = make_session()
    first, second = split_payload(payload, [40, 40])
    assert session.handle_chunk(first) is None
    assert session.handle_chunk(second) is not None
    assert len(records) == 1


def test_rejected_chunk_emits_nothing(payload):
    session, records, _ = make_session()
    frame = bytearray(encode_frame(payload))
    frame[-1] ^= 0xFF
    assert session.handle_chunk(bytes(frame)) is None
    assert records == []
    assert session.decoder.stats.rejected_total == 1


def test_packet_rate():
    clock = FakeClock()
    session, _, _ = make_session(clock=clock)
    frame = encode_frame(build_payload())
    for _ in range(25):
        session.handle_chunk(frame)
    clock.now += 2.5
    assert session.packet_rate == 10.0


def test_packet_rate_without_elapsed_time():
    session, _, _ = make_session()
    assert session.packet_rate == 0.0


def test_first_low_battery_reading_is_ignored():
    session, _, low = make_session()
    frame = encode_frame(build_payload(battery_status=0x00))
    session.handle_chunk(frame)
    assert low == []
    session.handle_chunk(frame)
    assert len(low) == 1


def test_charging_device_never_reports_low_battery():
    session, _, low = make_session()
    frame = encode_frame(build_payload(battery_status=0x81))
    for _ in range(3):
        session.handle_chunk(frame)
    assert low == []


def test_low_battery_threshold_is_configurable():
    session, _, low = make_session(low_battery_level=20)
    frame = encode_frame(build_payload(battery_status=15))
    session.handle_chunk(frame)
    session.handle_chunk(frame)
    assert low[0].battery_level == 15


def test_reset_clears_connection_state(payload):
    session, _, low = make_session(decoder=FrameDecoder())
    session.set_serial_number(b"RBM-1234")
    first, _ = split_payload(payload, [40, 40])
    session.handle_chunk(encode_frame(payload))
    session.handle_chunk(first)

    session.reset()
    assert session.serial_number is None
    assert session.latest is None
    assert session.packet_count == 0
    assert session.decoder.pending_length == 0

    # First reading after reset is skipped again
    session.handle_chunk(encode_frame(build_payload(battery_status=0x01)))
    assert low == []


def test_serial_number_decoding():
    assert decode_serial_number(b"3242703847") == "3242703847"
    assert decode_serial_number(b"RB\xffX") == "RB\ufffdX"


def test_set_serial_number():
    session, _, _ = make_session()
    assert session.set_serial_number(b"RBM-1234") == "RBM-1234"
    assert session.serial_number == "RBM-1234"


def test_out_of_range_timestamp_still_emits_record():
    session, records, _ = make_session()
    payload = build_payload(
        year=1, month=1, day=1, hour=0, minute=0, second=0, nanoseconds=-1_000
    )
    record = session.handle_chunk(encode_frame(payload))
    assert record is not None
    assert record.timestamp is None
    assert records == [record]
