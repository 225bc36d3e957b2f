import socket
import zlib

import pytest

from rtptransfer.protocol import (
    HEADER_SIZE,
    PAYLOAD_MAX,
    Flag,
    Mode,
    Packet,
    ProtocolError,
    compute_checksum,
    is_timeout,
    log_debug,
    log_msg,
    make_packet,
    recv_packet,
    seq_diff,
    verify_checksum,
)


@pytest.fixture
def udp_pair():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield sender, receiver
    sender.close()
    receiver.close()


def test_header_size_is_eleven():
    assert HEADER_SIZE == 11
    assert len(make_packet(7, Flag.SYN).encode()) == 11


@pytest.mark.parametrize(
    "flags,value",
    [
        (Flag.SYN, 0b0001),
        (Flag.ACK, 0b0010),
        (Flag.FIN, 0b0100),
        (Flag.SYN | Flag.ACK, 0b0011),
        (Flag.FIN | Flag.ACK, 0b0110),
    ],
)
def test_flag_byte_in_encoded_header(flags, value):
    encoded = make_packet(0, flags).encode()
    assert encoded[10] == value
    assert Packet.decode(encoded).has_flag(flags)


def test_crc_check_value():
    assert compute_checksum(b"123456789") == 0xCBF43926


def test_checksum_matches_standard_crc32():
    data = bytes(range(256)) * 3
    assert compute_checksum(data) == zlib.crc32(data)


def test_sequence_number_is_little_endian():
    encoded = make_packet(0x01020304, Flag.ACK).encode()
    assert encoded[:4] == b"\x04\x03\x02\x01"


def test_round_trip_with_payload():
    original = make_packet(42, Flag(0), b"hello world")
    decoded = Packet.decode(original.encode())
    assert decoded == original
    assert decoded.length == len(b"hello world")


def test_round_trip_full_payload():
    payload = bytes(i % 251 for i in range(PAYLOAD_MAX))
    original = make_packet(2**32 - 1, Flag(0), payload)
    assert Packet.decode(original.encode()).payload == payload


def test_encoded_packet_verifies():
    encoded = make_packet(3, Flag.SYN | Flag.ACK).encode()
    assert verify_checksum(encoded) is True


def test_corrupted_packet_fails_verification():
    encoded = bytearray(make_packet(3, Flag(0), b"abc").encode())
    encoded[-1] ^= 0xFF
    assert verify_checksum(bytes(encoded)) is False
    with pytest.raises(ProtocolError):
        Packet.decode(bytes(encoded))


def test_decode_rejects_short_datagram():
    with pytest.raises(ProtocolError):
        Packet.decode(b"\x00\x01\x02")


def test_decode_rejects_length_mismatch():
    encoded = make_packet(5, Flag(0), b"abcdef").encode()
    with pytest.raises(ProtocolError):
        Packet.decode(encoded[:-2])
    with pytest.raises(ProtocolError):
        Packet.decode(encoded + b"x")


def test_make_packet_rejects_oversized_payload():
    with pytest.raises(ValueError):
        make_packet(0, Flag(0), b"x" * (PAYLOAD_MAX + 1))


def test_make_packet_rejects_bad_sequence_number():
    with pytest.raises(ValueError):
        make_packet(-1)
    with pytest.raises(ValueError):
        make_packet(2**32)


def test_has_flag():
    packet = make_packet(1, Flag.FIN | Flag.ACK)
    assert packet.has_flag(Flag.FIN)
    assert packet.has_flag(Flag.ACK)
    assert not packet.has_flag(Flag.SYN)


def test_different_flags_give_different_checksums():
    assert make_packet(9, Flag.SYN).checksum != make_packet(9, Flag.ACK).checksum


def test_mode_values():
    assert Mode(0) is Mode.GO_BACK_N
    assert Mode(1) is Mode.SELECTIVE_REPEAT
    assert Mode(7) is Mode.SELECTIVE_REPEAT


@pytest.mark.parametrize("a,b", [(10, 3), (100, 0), (5, 5)])
def test_seq_diff_forward(a, b):
    assert seq_diff(a, b, 16) + b == a


@pytest.mark.parametrize("a,b,w", [(3, 10, 16), (0, 1, 32), (4, 12, 64)])
def test_seq_diff_wraps(a, b, w):
    assert seq_diff(a, b, w) + seq_diff(b, a, w) == w


def test_seq_diff_wrapped_value():
    assert seq_diff(2, 14, 16) == 4


def test_is_timeout():
    assert is_timeout(10.0, 5.0, 5.0) is False
    assert is_timeout(10.5, 5.0, 5.0) is True
    assert is_timeout(5.0, 5.0, 0.1) is False


def test_recv_packet_receives_valid(udp_pair):
    sender, receiver = udp_pair
    packet = make_packet(77, Flag(0), b"payload")
    sender.sendto(packet.encode(), receiver.getsockname())
    result = recv_packet(receiver, 2.0)
    assert result is not None
    received, address = result
    assert received == packet
    assert address[1] == sender.getsockname()[1]


def test_recv_packet_times_out(udp_pair):
    _, receiver = udp_pair
    assert recv_packet(receiver, 0.05) is None


def test_recv_packet_drops_corrupt(udp_pair):
    sender, receiver = udp_pair
    encoded = bytearray(make_packet(1, Flag(0), b"data").encode())
    encoded[HEADER_SIZE] ^= 0x01
    sender.sendto(bytes(encoded), receiver.getsockname())
    assert recv_packet(receiver, 1.0) is None


def test_log_msg_writes_info(capsys):
    log_msg("Connection built\n")
    out = capsys.readouterr().out
    assert "[ INFO     ] " in out
    assert out.endswith("Connection built\n")


def test_log_debug_writes_stderr(capsys):
    log_debug("exiting...\n")
    captured = capsys.readouterr()
    assert "[ DEBUG    ] " in captured.err
    assert captured.out == ""