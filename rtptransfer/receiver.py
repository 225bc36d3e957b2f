"""Receiving side of the transfer: handshake, sliding-window data and teardown."""

from __future__ import annotations

import contextlib
import socket
import sys
import time

from rtptransfer.protocol import (
    MAX_RETRY,
    SEQ_MODULUS,
    Flag,
    Mode,
    Packet,
    ProtocolError,
    is_timeout,
    log_debug,
    log_msg,
    make_packet,
    recv_packet,
)

_FATAL_PREFIX = "\033[40;31m[ FATAL    ] \033[0m"
_USAGE = "Usage: receiver [listen port] [file path] [window size] [mode]\n"


class Receiver:
    """Receives a stream over UDP and writes it to a binary stream."""

    def __init__(self, port, stream, window_size, mode):
        if window_size < 1:
            raise ValueError(f"window size must be positive, got {window_size}")
        self.window_size = window_size
        self.mode = Mode(mode)
        self.timeout = 0.1
        self.idle_timeout = 5.0
        self.linger = 2.0
        self.max_retry = MAX_RETRY
        self._stream = stream
        self._client: tuple[str, int] | None = None
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._sock.bind(("", port))
        except OSError:
            self._sock.close()
            raise

    def __enter__(self) -> "Receiver":
        return self

    def __exit__(self, *exc_info) -> None:
        self._sock.close()

    @property
    def address(self) -> tuple[str, int]:
        """The local address the receiver listens on."""
        return self._sock.getsockname()

    # -- low-level helpers -------------------------------------------------

    def _send(self, packet: Packet, what: str) -> None:
        if self._client is None:
            raise ProtocolError(f"unable to send {what}: no client connected")
        try:
            self._sock.sendto(packet.encode(), self._client)
        except OSError as exc:
            raise ProtocolError(f"unable to send {what}") from exc

    def _send_quietly(self, packet: Packet) -> None:
        if self._client is None:
            return
        with contextlib.suppress(OSError):
            self._sock.sendto(packet.encode(), self._client)

    def _ack(self, seq_num: int) -> None:
        self._send_quietly(make_packet(seq_num, Flag.ACK))

    # -- protocol phases ---------------------------------------------------

    def accept(self):
        """Wait for a SYN and complete the handshake; return the first data sequence number."""
        deadline = time.monotonic() + self.idle_timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProtocolError("timeout waiting for syn")
            received = recv_packet(self._sock, remaining)
            if received is not None and received[0].flags == Flag.SYN:
                break

        syn, self._client = received
        seq_num = (syn.seq_num + 1) % SEQ_MODULUS
        synack = make_packet(seq_num, Flag.SYN | Flag.ACK)
        for _ in range(self.max_retry):
            self._send(synack, "synack")
            reply = recv_packet(self._sock, self.timeout)
            if reply is not None and reply[0].seq_num == seq_num and reply[0].flags == Flag.ACK:
                break
        else:
            raise ProtocolError("timeout waiting for ack")

        log_msg("Receiver: Connection built\n")
        return seq_num

    def go_back_n(self, seq_num):
        """Receive in order with go-back-N; return the sequence number of the FIN."""
        expected = seq_num
        start = time.monotonic()
        while True:
            received = recv_packet(self._sock, self.timeout)
            if received is not None:
                packet, self._client = received
                if packet.flags == Flag.FIN and packet.seq_num == expected:
                    return expected
                if packet.flags == Flag(0):
                    if packet.seq_num != expected:
                        self._ack(expected)
                        continue
                    self._stream.write(packet.payload)
                    expected = (expected + 1) % SEQ_MODULUS
                    self._ack(expected)
                    start = time.monotonic()
                    continue
            if is_timeout(time.monotonic(), start, self.idle_timeout):
                raise ProtocolError("timeout waiting for more data")

    def selective_repeat(self, seq_num):
        """Receive with selective repeat; return the sequence number of the FIN."""
        slots: list[bytes | None] = [None] * self.window_size
        expected = seq_num
        start = time.monotonic()
        while True:
            received = recv_packet(self._sock, self.idle_timeout)
            packet = None
            if received is not None:
                packet, self._client = received
                if packet.flags == Flag.FIN and packet.seq_num == expected:
                    return expected
            if (
                packet is None
                or packet.flags != Flag(0)
                or not expected - self.window_size <= packet.seq_num < expected + self.window_size
            ):
                if is_timeout(time.monotonic(), start, self.idle_timeout):
                    raise ProtocolError("timeout waiting for more data")
                continue

            if packet.seq_num >= expected:
                slots[packet.seq_num % self.window_size] = packet.payload

            if packet.seq_num == expected:
                while (payload := slots[expected % self.window_size]) is not None:
                    self._stream.write(payload)
                    slots[expected % self.window_size] = None
                    expected = (expected + 1) % SEQ_MODULUS

            self._ack(packet.seq_num)
            start = time.monotonic()

    def close(self, seq_num):
        """Answer the sender's FIN with FIN-ACK until it stops repeating the FIN."""
        finack = make_packet(seq_num, Flag.FIN | Flag.ACK)
        for _ in range(self.max_retry):
            self._send(finack, "finack")
            reply = recv_packet(self._sock, self.linger)
            if reply is None or reply[0].seq_num != seq_num or reply[0].flags != Flag.FIN:
                break
        else:
            raise ProtocolError("max attempts to send finack")
        log_msg("Receiver: Connection closed\n")

    def run(self):
        """Accept a connection, receive the whole stream and close; return the final sequence number."""
        seq_num = self.accept()
        if self.mode is Mode.GO_BACK_N:
            end = self.go_back_n(seq_num)
        else:
            end = self.selective_repeat(seq_num)
        self.close(end)
        return end


def _log_fatal(message: str) -> None:
    sys.stderr.write(_FATAL_PREFIX + message)
    sys.stderr.flush()


def main(argv=None):
    """Command entry point; returns the process exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 4:
        _log_fatal(_USAGE)
        return 1
    port_text, path, window_text, mode_text = args
    try:
        port = int(port_text)
        window_size = int(window_text)
        mode = Mode(int(mode_text))
    except ValueError:
        _log_fatal(_USAGE)
        return 1

    try:
        with open(path, "wb") as stream, Receiver(port, stream, window_size, mode) as receiver:
            receiver.run()
    except (OSError, ValueError, ProtocolError) as exc:
        _log_fatal(f"Receiver: {exc}\n")
        return 1
    log_debug("Receiver: exiting...\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())