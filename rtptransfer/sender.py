"""Sending side of the transfer: handshake, sliding-window data and teardown."""

from __future__ import annotations

import contextlib
import random
import socket
import sys
import time
from collections.abc import Iterator

from rtptransfer.protocol import (
    MAX_RETRY,
    PAYLOAD_MAX,
    Flag,
    Mode,
    Packet,
    ProtocolError,
    log_debug,
    log_msg,
    make_packet,
    recv_packet,
)

_FATAL_PREFIX = "\033[40;31m[ FATAL    ] \033[0m"
_USAGE = "Usage: sender [receiver ip] [receiver port] [file path] [window size] [mode]\n"


class Sender:
    """Sends the contents of a binary stream to a receiver over UDP."""

    def __init__(self, address, port, stream, window_size, mode):
        if window_size < 1:
            raise ValueError(f"window size must be positive, got {window_size}")
        self.destination = (address, port)
        self.window_size = window_size
        self.mode = Mode(mode)
        self.timeout = 0.1
        self.linger = 2.0
        self.max_retry = MAX_RETRY
        self._stream = stream
        self._eof = False
        self._window: list[Packet | None] = [None] * window_size
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def __enter__(self) -> "Sender":
        return self

    def __exit__(self, *exc_info) -> None:
        self._sock.close()

    # -- low-level helpers -------------------------------------------------

    def _send(self, packet: Packet, what: str) -> None:
        try:
            self._sock.sendto(packet.encode(), self.destination)
        except OSError as exc:
            raise ProtocolError(f"unable to send {what}") from exc

    def _send_quietly(self, packet: Packet) -> None:
        with contextlib.suppress(OSError):
            self._sock.sendto(packet.encode(), self.destination)

    def _packets_until(self, deadline: float) -> Iterator[Packet]:
        """Yield valid packets until ``deadline`` (monotonic seconds) passes."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            received = recv_packet(self._sock, remaining)
            if received is not None:
                yield received[0]

    def _next_retry(self, retry: int) -> int:
        if retry >= self.max_retry:
            raise ProtocolError("max attempts resending data")
        return retry + 1

    def _read_chunk(self) -> bytes:
        chunk = bytearray()
        while len(chunk) < PAYLOAD_MAX:
            part = self._stream.read(PAYLOAD_MAX - len(chunk))
            if not part:
                self._eof = True
                break
            chunk += part
        return bytes(chunk)

    def _fill_window(self, lower: int, upper: int, acked: list[bool] | None = None) -> int:
        """Load packets ``lower``..``upper`` into the window; return the new end."""
        for seq in range(lower, upper):
            pos = seq % self.window_size
            self._window[pos] = make_packet(seq, Flag(0), self._read_chunk())
            if acked is not None:
                acked[pos] = False
            if self._eof:
                return seq + 1
        return upper

    def _packet_at(self, seq: int) -> Packet:
        packet = self._window[seq % self.window_size]
        assert packet is not None
        return packet

    # -- protocol phases ---------------------------------------------------

    def connect(self, seq_num):
        """Perform the SYN / SYN-ACK / ACK handshake starting at ``seq_num``."""
        syn = make_packet(seq_num, Flag.SYN)
        for _ in range(self.max_retry):
            self._send(syn, "syn")
            received = recv_packet(self._sock, self.timeout)
            if (
                received is not None
                and received[0].seq_num == seq_num + 1
                and received[0].flags == Flag.SYN | Flag.ACK
            ):
                break
        else:
            raise ProtocolError("timeout waiting for synack")

        ack = make_packet(seq_num + 1, Flag.ACK)
        for _ in range(self.max_retry):
            self._send(ack, "ack")
            received = recv_packet(self._sock, self.linger)
            if (
                received is None
                or received[0].seq_num != seq_num + 1
                or received[0].flags != Flag.SYN | Flag.ACK
            ):
                break
        else:
            raise ProtocolError("max attempts to send ack")

        log_msg("Sender: Connection built\n")

    def go_back_n(self, seq_num):
        """Send the stream with go-back-N; return the sequence number after the last packet."""
        start = seq_num
        end = self._fill_window(seq_num, seq_num + self.window_size)
        retry = 0
        while True:
            for seq in range(start, end):
                self._send_quietly(self._packet_at(seq))
            deadline = time.monotonic() + self.timeout

            for ack in self._packets_until(deadline):
                if ack.flags == Flag.ACK and start < ack.seq_num <= end:
                    break
            else:
                retry = self._next_retry(retry)
                continue

            retry = 0
            start = ack.seq_num
            if self._eof and start >= end:
                log_msg("Sender: Sending completed\n")
                return end
            if not self._eof:
                end = self._fill_window(end, start + self.window_size)

    def selective_repeat(self, seq_num):
        """Send the stream with selective repeat; return the sequence number after the last packet."""
        acked = [False] * self.window_size
        start = seq_num
        end = self._fill_window(seq_num, seq_num + self.window_size, acked)
        retry = 0
        while True:
            for seq in range(start, end):
                if not acked[seq % self.window_size]:
                    self._send_quietly(self._packet_at(seq))
            deadline = time.monotonic() + self.timeout

            for ack in self._packets_until(deadline):
                if ack.flags != Flag.ACK or not start <= ack.seq_num < end:
                    continue
                if ack.seq_num > start:
                    acked[ack.seq_num % self.window_size] = True
                    continue
                break
            else:
                retry = self._next_retry(retry)
                continue

            acked[start % self.window_size] = True
            retry = 0
            while start < end and acked[start % self.window_size]:
                start += 1

            if self._eof and start >= end:
                log_msg("Sender: Sending completed\n")
                return end
            if not self._eof:
                end = self._fill_window(end, start + self.window_size, acked)

    def close(self, seq_num):
        """Send FIN at ``seq_num`` until the receiver answers with FIN-ACK."""
        fin = make_packet(seq_num, Flag.FIN)
        for _ in range(self.max_retry):
            self._send(fin, "fin")
            deadline = time.monotonic() + self.timeout
            for reply in self._packets_until(deadline):
                if reply.seq_num == seq_num and reply.flags == Flag.FIN | Flag.ACK:
                    log_msg("Sender: Connection closed\n")
                    return
        raise ProtocolError("timeout waiting for finack")

    def run(self):
        """Connect, transfer the whole stream and close; return the final sequence number."""
        initial = random.randrange(1 << 31)
        self.connect(initial)
        if self.mode is Mode.GO_BACK_N:
            end = self.go_back_n(initial + 1)
        else:
            end = self.selective_repeat(initial + 1)
        self.close(end)
        return end


def _log_fatal(message: str) -> None:
    sys.stderr.write(_FATAL_PREFIX + message)
    sys.stderr.flush()


def main(argv=None):
    """Command entry point; returns the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 5:
        _log_fatal(_USAGE)
        return 1
    address, port_text, path, window_text, mode_text = args
    try:
        port = int(port_text)
        window_size = int(window_text)
        mode = Mode(int(mode_text))
    except ValueError:
        _log_fatal(_USAGE)
        return 1

    try:
        with open(path, "rb") as stream, Sender(address, port, stream, window_size, mode) as sender:
            sender.run()
    except (OSError, ValueError, ProtocolError) as exc:
        _log_fatal(f"Sender: {exc}\n")
        return 1
    log_debug("Sender: exiting...\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())