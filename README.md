# rtptransfer

Reliable file transfer over UDP (IPv4). A sender reads a file, splits it
into packets of up to 1461 bytes of payload, and delivers them to a
receiver that writes them out in order. Every packet carries a 32-bit
sequence number, a payload length, a CRC-32 checksum and a flags byte
(`SYN`, `ACK`, `FIN`). Datagrams that are truncated or fail the checksum
are discarded; lost, damaged, duplicated or reordered packets are recovered
by retransmission.

Two sliding-window modes are available:

* `0` – go-back-N: the receiver accepts only the next expected packet and
  acknowledges cumulatively; the sender resends the whole window on timeout.
* `1` (or any other non-zero number) – selective repeat: the receiver
  buffers out-of-order packets inside the window and acknowledges each one;
  the sender resends only the packets that have not been acknowledged.

Both sides must use the same window size and mode.

## Installation

```
pip install .
```

## Usage

Start the receiver first:

```
rtp-receiver <listen port> <output file> <window size> <mode>
```

Then start the sender:

```
rtp-sender <receiver ip> <receiver port> <input file> <window size> <mode>
```

For example, to copy `data.bin` over the loopback interface with a window
of 16 packets using selective repeat:

```
rtp-receiver 50000 received.bin 16 1
rtp-sender 127.0.0.1 50000 data.bin 16 1
```

The connection is opened with a three-way handshake (`SYN`, `SYN|ACK`,
`ACK`) and closed with `FIN` / `FIN|ACK`. Progress messages
("Connection built", "Connection closed") go to standard output. If the
arguments are wrong, the peer stops answering for too long (the receiver
gives up after 5 seconds without usable data), or retransmission is
attempted more than 50 times in a row, the program prints a fatal message
on standard error and exits with status 1.

## Library use

The same machinery is available from Python.

`rtptransfer.protocol` holds the wire format: `Flag`, `Mode`, `Packet`
(with `encode`, `decode` and `has_flag`), `make_packet`, which fills in the
checksum, `compute_checksum`, `verify_checksum`, `seq_diff`, `recv_packet`
and `is_timeout`. `Packet.decode` raises `ProtocolError` for a short,
oversized, mislabelled or corrupt datagram.

```python
from rtptransfer.protocol import Flag, Packet, make_packet

packet = make_packet(7, Flag.ACK, b"")
decoded = Packet.decode(packet.encode())
assert decoded.seq_num == 7 and decoded.has_flag(Flag.ACK)
```

`Sender` and `Receiver` each own a UDP socket and are context managers:

```python
from rtptransfer.protocol import Mode
from rtptransfer.receiver import Receiver
from rtptransfer.sender import Sender

with open("received.bin", "wb") as out, Receiver(50000, out, 16, Mode.SELECTIVE_REPEAT) as receiver:
    receiver.run()

# in another process or thread:
with open("data.bin", "rb") as src, Sender("127.0.0.1", 50000, src, 16, Mode.SELECTIVE_REPEAT) as sender:
    sender.run()
```

`run()` performs the handshake, the transfer and the teardown and returns
the final sequence number; the phases are also available separately
(`connect` / `accept`, `go_back_n`, `selective_repeat`, `close`). Failures
raise `ProtocolError`. Timing can be tuned through the attributes
`timeout`, `linger`, `max_retry` and, on the receiver, `idle_timeout`.
Passing port `0` to `Receiver` binds an ephemeral port, readable from its
`address` property.

## Limitations

A receiver serves a single transfer from a single sender and then stops.
There is no encryption or authentication, no IPv6 support, and no built-in
way to simulate packet loss or corruption.

## Tests

```
pip install .[test]
pytest
```