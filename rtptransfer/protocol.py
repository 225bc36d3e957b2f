"""Wire format, checksums and socket helpers shared by the sender and receiver."""

from __future__ import annotations

import enum
import select
import socket
import struct
import sys
import zlib
from dataclasses import dataclass

PAYLOAD_MAX = 1461
MAX_RETRY = 50
SEQ_MODULUS = 1 << 32

# seq_num (u32), length (u16), checksum (u32), flags (u8); packed, little-endian.
_HEADER = struct.Struct("<IHIB")
HEADER_SIZE = _HEADER.size
_CHECKSUM_SLICE = slice(6, 10)

_INFO_PREFIX = "\033[40;32m[ INFO     ] \033[0m"
_DEBUG_PREFIX = "\033[40;33m[ DEBUG    ] \033[0m"


class Flag(enum.IntFlag):
    """Bits of the flags byte in the packet header."""

    SYN = 0b0001
    ACK = 0b0010
    FIN = 0b0100


class Mode(enum.IntEnum):
    """Transfer mode; any non-zero value selects selective repeat."""

    GO_BACK_N = 0
    SELECTIVE_REPEAT = 1

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, int):
            return cls.SELECTIVE_REPEAT
        return None


class ProtocolError(Exception):
    """A packet is malformed or the transfer cannot go on."""


def compute_checksum(data: bytes) -> int:
    """Return the 32-bit CRC of ``data``."""
    return zlib.crc32(data) & 0xFFFFFFFF


def _zero_checksum(data: bytes) -> bytes:
    return data[: _CHECKSUM_SLICE.start] + bytes(4) + data[_CHECKSUM_SLICE.stop :]


def verify_checksum(data: bytes) -> bool:
    """Check the checksum stored in an encoded packet against its contents."""
    if len(data) < HEADER_SIZE:
        return False
    _, length, stored, _ = _HEADER.unpack_from(data)
    total = HEADER_SIZE + length
    if len(data) < total:
        return False
    return compute_checksum(_zero_checksum(bytes(data[:total]))) == stored


@dataclass(frozen=True)
class Packet:
    """One protocol packet: header fields and payload."""

    seq_num: int
    flags: Flag = Flag(0)
    payload: bytes = b""
    checksum: int = 0

    @property
    def length(self) -> int:
        return len(self.payload)

    def encode(self) -> bytes:
        """Serialise the packet with its stored checksum."""
        header = _HEADER.pack(self.seq_num, self.length, self.checksum, int(self.flags))
        return header + self.payload

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """Parse and validate a received datagram."""
        if len(data) < HEADER_SIZE:
            raise ProtocolError(f"datagram of {len(data)} bytes is shorter than a header")
        seq_num, length, checksum, flags = _HEADER.unpack_from(data)
        if length > PAYLOAD_MAX:
            raise ProtocolError(f"payload length {length} exceeds {PAYLOAD_MAX}")
        if len(data) != HEADER_SIZE + length:
            raise ProtocolError(
                f"datagram of {len(data)} bytes does not match declared length {length}"
            )
        if not verify_checksum(data):
            raise ProtocolError("checksum mismatch")
        return cls(
            seq_num=seq_num,
            flags=Flag(flags),
            payload=bytes(data[HEADER_SIZE:]),
            checksum=checksum,
        )

    def has_flag(self, flag: Flag) -> bool:
        return bool(self.flags & flag)


def make_packet(seq_num: int, flags: Flag = Flag(0), payload: bytes = b"") -> Packet:
    """Build a packet and fill in its checksum."""
    payload = bytes(payload)
    if len(payload) > PAYLOAD_MAX:
        raise ValueError(f"payload of {len(payload)} bytes exceeds {PAYLOAD_MAX}")
    if not 0 <= seq_num < SEQ_MODULUS:
        raise ValueError(f"sequence number {seq_num} out of range")
    unsigned = Packet(seq_num=seq_num, flags=Flag(flags), payload=payload)
    return Packet(
        seq_num=seq_num,
        flags=Flag(flags),
        payload=payload,
        checksum=compute_checksum(unsigned.encode()),
    )


def seq_diff(a: int, b: int, w: int) -> int:
    """Distance from ``b`` forward to ``a``, wrapping at ``w``."""
    if a >= b:
        return a - b
    return (a + w - b) % SEQ_MODULUS


def recv_packet(sock: socket.socket, timeout: float):
    """Wait up to ``timeout`` seconds for a valid packet.

    Returns ``(packet, address)``, or ``None`` when nothing arrived in time or
    the datagram was malformed or corrupt.
    """
    ready, _, _ = select.select([sock], [], [], timeout)
    if not ready:
        return None
    try:
        data, address = sock.recvfrom(HEADER_SIZE + PAYLOAD_MAX)
    except OSError:
        return None
    try:
        return Packet.decode(data), address
    except ProtocolError:
        return None


def is_timeout(now: float, start: float, limit: float) -> bool:
    """True once more than ``limit`` seconds have passed since ``start``."""
    return now > start + limit


def log_msg(message: str) -> None:
    sys.stdout.write(_INFO_PREFIX + message)
    sys.stdout.flush()


def log_debug(message: str) -> None:
    sys.stderr.write(_DEBUG_PREFIX + message)
    sys.stderr.flush()