"""RaceBox BLE protocol framing, checksum and fragment reassembly.

Frame format (all multi-byte fields little-endian):
    [0xB5][0x62][0xFF][0x01][len_low][len_high][payload...][ck_a][ck_b]

- Sync: 0xB5 0x62 (2 bytes)
- Class/ID: 0xFF 0x01 (2 bytes)
- Length: 2 bytes, little-endian - length of payload only
- Payload: raw sensor data, 80 bytes once fully reassembled
- Checksum: 8-bit Fletcher over class/id, length and payload

The device sends one frame per BLE notification. When the connection MTU is
too small the 80-byte payload is split across several frames, each with its
own header and checksum and a shorter declared length.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

FRAME_SYNC = b"\xb5\x62"
FRAME_CLASS_ID = b"\xff\x01"
HEADER_SIZE = 6  # sync (2) + class/id (2) + length (2)
CHECKSUM_SIZE = 2
MIN_FRAME_SIZE = HEADER_SIZE + CHECKSUM_SIZE
FULL_PAYLOAD_LENGTH = 80


def checksum(data: bytes) -> tuple[int, int]:
    """Calculate the two checksum bytes over data."""
    ck_a, ck_b = 0, 0
    for b in data:
        ck_a = (ck_a + b) & 0xFF
        ck_b = (ck_b + ck_a) & 0xFF
    return ck_a, ck_b


def encode_frame(payload: bytes) -> bytes:
    """Encode a payload (or payload fragment) into a framed packet."""
    body = FRAME_CLASS_ID + len(payload).to_bytes(2, "little") + payload
    ck_a, ck_b = checksum(body)
    return FRAME_SYNC + body + bytes((ck_a, ck_b))


def split_payload(payload: bytes, sizes: Iterable[int]) -> list[bytes]:
    """Split a payload into independently framed fragments of the given sizes."""
    frames = []
    offset = 0
    for size in sizes:
        frames.append(encode_frame(payload[offset : offset + size]))
        offset += size
    if offset != len(payload):
        raise ValueError(
            f"fragment sizes cover {offset} bytes, payload has {len(payload)}"
        )
    return frames


def read_payload_length(frame: bytes) -> int:
    """Return the declared payload length of a frame."""
    return int.from_bytes(frame[4:HEADER_SIZE], "little")


def get_payload(frame: bytes) -> bytes:
    """Return the payload slice of a frame, as declared by its length field."""
    return bytes(frame[HEADER_SIZE : HEADER_SIZE + read_payload_length(frame)])


class RejectReason(Enum):
    """Why a chunk was declined by the decoder."""

    FRAME_TOO_SHORT = "frame-too-short"
    CHECKSUM_INVALID = "checksum-invalid"
    FRAME_START_INVALID = "frame-start-invalid"
    LENGTH_MISMATCH = "length-mismatch"
    FRAGMENT_OVERFLOW = "fragment-overflow"


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason


@dataclass(frozen=True)
class Incomplete:
    """Fragment accepted; waiting for the rest of the payload."""

    received: int
    expected: int = FULL_PAYLOAD_LENGTH


@dataclass(frozen=True)
class Complete:
    payload: bytes


FrameResult = Rejected | Incomplete | Complete


@dataclass
class DecoderStats:
    """Counters for decoder outcomes."""

    complete: int = 0
    incomplete: int = 0
    reassembled: int = 0
    rejected: dict[RejectReason, int] = field(
        default_factory=lambda: {reason: 0 for reason in RejectReason}
    )
    stale_discarded: int = 0
    timed_out: int = 0

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())


class ReassemblyBuffer:
    """Ordered fragments of one in-progress payload."""

    def __init__(self) -> None:
        self._fragments: list[bytes] = []
        self.started_at: float | None = None

    def __len__(self) -> int:
        return len(self._fragments)

    @property
    def pending(self) -> bool:
        return bool(self._fragments)

    @property
    def total_length(self) -> int:
        """Sum of declared payload lengths, recomputed from buffered fragments."""
        return sum(read_payload_length(frame) for frame in self._fragments)

    def append(self, frame: bytes, now: float) -> None:
        if not self._fragments:
            self.started_at = now
        self._fragments.append(bytes(frame))

    def assemble(self) -> bytes:
        """Concatenate the fragments' payloads in arrival order."""
        return b"".join(get_payload(frame) for frame in self._fragments)

    def clear(self) -> None:
        self._fragments.clear()
        self.started_at = None


class FrameDecoder:
    """Stateful decoder turning BLE notification chunks into full payloads.

    One decoder handles the byte stream of a single device. Chunks must be
    submitted in arrival order from a single caller.

    ``discard_stale_fragments`` decides what happens to pending fragments when
    a full-length frame arrives: drop them (True) or keep waiting for the rest
    of the sequence (False). ``fragment_timeout`` evicts a pending sequence
    whose first fragment is older than the given number of seconds; None
    never evicts.
    """

    def __init__(
        self,
        discard_stale_fragments: bool = False,
        fragment_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._buffer = ReassemblyBuffer()
        self._discard_stale = discard_stale_fragments
        self._fragment_timeout = fragment_timeout
        self._clock = clock
        self.stats = DecoderStats()

    @property
    def pending_length(self) -> int:
        """Payload bytes buffered for the in-progress sequence."""
        return self._buffer.total_length

    def reset(self) -> None:
        """Drop any in-progress reassembly."""
        self._buffer.clear()

    def submit(self, data: bytes) -> FrameResult:
        """Submit one received chunk and return the decode outcome."""
        now = self._clock()
        self._evict_expired(now)

        if len(data) < MIN_FRAME_SIZE:
            return self._reject(RejectReason.FRAME_TOO_SHORT, data)

        # Checksum first: it sits in the last two bytes of whatever arrived
        ck_a, ck_b = checksum(data[2:-CHECKSUM_SIZE])
        if data[-2] != ck_a or data[-1] != ck_b:
            return self._reject(RejectReason.CHECKSUM_INVALID, data)

        if data[0:2] != FRAME_SYNC or data[2:4] != FRAME_CLASS_ID:
            return self._reject(RejectReason.FRAME_START_INVALID, data)

        length = read_payload_length(data)
        if length != len(data) - MIN_FRAME_SIZE:
            return self._reject(RejectReason.LENGTH_MISMATCH, data)

        if length == FULL_PAYLOAD_LENGTH:
            if self._buffer.pending and self._discard_stale:
                logger.warning(
                    "Full frame arrived with %d pending fragment(s), discarding them",
                    len(self._buffer),
                )
                self.stats.stale_discarded += 1
                self._buffer.clear()
            self.stats.complete += 1
            return Complete(get_payload(data))

        return self._add_fragment(data, length, now)

    def _add_fragment(self, data: bytes, length: int, now: float) -> FrameResult:
        buffered = self._buffer.total_length
        if buffered + length > FULL_PAYLOAD_LENGTH:
            self._buffer.clear()
            logger.warning(
                "Fragment of %d bytes overflows %d buffered bytes, dropping sequence",
                length,
                buffered,
            )
            return self._reject(RejectReason.FRAGMENT_OVERFLOW, data)

        self._buffer.append(data, now)
        total = self._buffer.total_length
        if total < FULL_PAYLOAD_LENGTH:
            logger.debug(
                "Incomplete packet: %d/%d payload bytes", total, FULL_PAYLOAD_LENGTH
            )
            self.stats.incomplete += 1
            return Incomplete(received=total)

        payload = self._buffer.assemble()
        fragments = len(self._buffer)
        self._buffer.clear()
        logger.debug("Reconstructed payload from %d fragments", fragments)
        self.stats.complete += 1
        self.stats.reassembled += 1
        return Complete(payload)

    def _evict_expired(self, now: float) -> None:
        if self._fragment_timeout is None or not self._buffer.pending:
            return
        age = now - self._buffer.started_at
        if age > self._fragment_timeout:
            logger.warning(
                "Dropping %d stale fragment(s) after %.1fs", len(self._buffer), age
            )
            self.stats.timed_out += 1
            self._buffer.clear()

    def _reject(self, reason: RejectReason, data: bytes) -> Rejected:
        self.stats.rejected[reason] += 1
        logger.debug("Rejected %d byte chunk: %s", len(data), reason.value)
        return Rejected(reason)
