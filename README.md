# vnetkit

Small, dependency-free building blocks for packet-oriented transports,
and the parts of an in-process virtual UDP network: packets, queues,
interfaces, UDP connections, a connection registry and a NAT.

## Install

```
pip install vnetkit
pip install "vnetkit[test]"   # with pytest
```

## Modules

### `vnetkit.deadline`

`Deadline` is a deadline timer that can be moved, extended or cleared.
Times are absolute seconds since the epoch, as from `time.time()`.

- `set(when)` arms the deadline; `None` clears it. A time in the past fires at once.
- `done()` returns a `threading.Event` that is set once the deadline passes.
- `err()` returns a `DeadlineExceeded` instance after that point, otherwise `None`.
- `deadline()` returns `(when, is_set)`.

### `vnetkit.packetio`

`Buffer` is a packet FIFO that keeps write boundaries: each `read()` returns
exactly one written packet.

- `write(packet)` returns the length written. Packets of 65536 bytes or more
  raise `PacketTooBigError`; writing after `close()` raises `BufferClosedError`;
  a full buffer raises `BufferFullError`.
- `read(size=None)` blocks until a packet is available. If the packet is
  longer than `size`, `ShortBufferError` is raised with the truncated packet
  in its `data` attribute. Once the buffer is closed and empty, `EOFError`
  is raised. After the read deadline has passed, `BufferTimeoutError` is raised.
- `set_limit_count(n)` and `set_limit_size(n)` set limits (0 disables the
  count limit; a size limit of 0 means the 4 MiB default).
- `count()` and `size()` report the packets held and the bytes used, with
  two bytes of overhead per packet.
- `set_read_deadline(when)` sets an absolute read deadline, `None` removes it.
- `Buffer(size_hardlimit=True)` caps the buffer at 4 MiB even when a larger
  size limit is set.

### `vnetkit.replaydetector`

Sliding-window replay detection. `new(window_size, max_seq)` builds a
`SlidingWindowDetector` for sequence numbers that never wrap, as in DTLS.
`with_wrap(window_size, max_seq)` builds a `WrappedSlidingWindowDetector` for
short counters that wrap, as in SRTP and SRTCP. `check(seq)` returns a
callable that marks the number as received, or `None` if it is a replay, too
old or above `max_seq`. `FixedBigInt` is the fixed-width bit set used for the
window.

### `vnetkit.connctx`

`ConnCtx` wraps a connection object (one with `read(size)`, `write(data)`,
`close()`, `set_read_deadline(when)`, `set_write_deadline(when)`,
`local_addr()` and `remote_addr()`) so that each `read_context(ctx, size)`
and `write_context(ctx, data)` ends when the `Context` is cancelled or times
out. The context's error (`ContextCancelled` or `DeadlineExceeded`) is then
raised. After `close()`, reads raise `EOFError` and writes raise
`ConnClosingError`. `pipe()` returns a connected pair over a synchronous
in-memory pipe: each write waits until the other end has read it.

### `vnetkit.vnet`

- `vnet.chunk`: `UDPAddr` and `TCPAddr` addresses, the `TCPFlag` flags,
  and the `ChunkUDP` and `ChunkTCP` packets. Each new chunk gets a unique
  base36 tag from `assign_chunk_tag()`. `set_source_addr` and
  `set_destination_addr` take `"host:port"` and raise `ValueError` if it is
  invalid.
- `vnet.chunk_queue`: `ChunkQueue(max_size)`, a thread-safe FIFO whose `push`
  returns `False` when the queue is full; `pop` and `peek` return `None`
  when it is empty.
- `vnet.interface`: `Interface`, a named interface whose `addrs()` raises
  `NoAddressAssignedError` until `add_addr()` has been called.
- `vnet.conn`: `UDPConn(loc_addr, rem_addr, obs)`, a UDP connection. Sending
  hands a `ChunkUDP` to the observer (any object with `write(chunk)`,
  `on_closed(addr)` and `determine_source_ip(loc_ip, dst_ip)`). Arriving
  chunks are fed in with `on_inbound_chunk()`, up to 1024 queued.
  `read_from()` returns `(data, source_addr)`. Reads time out with
  `VNetTimeoutError`. After `close()` and once the queue is drained, they
  raise `ConnClosedError`. A second `close()` raises `AlreadyClosedError`.
- `vnet.conn_map`: `UDPConnMap`, which registers connections by local port
  and IP. An unspecified IP (`0.0.0.0`) listens on all addresses of its port.
  `insert` raises `AddressInUseError` on a clash. `find` returns the
  connection or `None`. `delete` raises `NoSuchUDPConnError` for an unknown port.
- `vnet.nat`: `NetworkAddressTranslator(NATConfig(...))` translates UDP chunks.
  `NATType` selects the mapping and filtering behaviour
  (`EndpointDependencyType`): endpoint-independent, address-dependent or
  address-and-port-dependent. It also sets the mapping lifetime in seconds
  (default 30) and the mode (`NATMode.NORMAL` or `NATMode.NAT_1TO1`). Mapped
  ports start at 49152. Dropped chunks and bad configurations raise
  `NATError`. A 1:1 NAT returns `None` from `translate_outbound` for a
  source it has no mapping for.

## Examples

Replay detection:

```python
from vnetkit.replaydetector import new

detector = new(64, 0xFFFFFFFFFFFF)
accept = detector.check(5)
if accept is not None:
    accept()                      # mark 5 as received
assert detector.check(5) is None  # replayed
```

Packet buffer:

```python
from vnetkit.packetio import Buffer

buf = Buffer()
buf.write(b"\x00\x01")
buf.write(b"\x02\x03\x04")
assert buf.read(1500) == b"\x00\x01"
assert buf.read(1500) == b"\x02\x03\x04"
```

A read bounded by a context:

```python
from vnetkit.connctx import Context, pipe
from vnetkit.deadline import DeadlineExceeded

a, b = pipe()
try:
    a.read_context(Context(timeout=0.05), 100)   # nobody writes
except DeadlineExceeded:
    print("timed out")
```

A UDP connection with a loopback observer:

```python
from ipaddress import ip_address
from vnetkit.vnet.chunk import UDPAddr
from vnetkit.vnet.conn import UDPConn

class Loopback:
    conn = None
    def write(self, chunk):
        self.conn.on_inbound_chunk(chunk)
    def on_closed(self, addr):
        pass
    def determine_source_ip(self, loc_ip, dst_ip):
        return loc_ip

obs = Loopback()
conn = obs.conn = UDPConn(UDPAddr(ip_address("127.0.0.1"), 1234), None, obs)
conn.write_to(b"hi", UDPAddr(ip_address("127.0.0.1"), 5678))
print(conn.read_from(1500))   # (b'hi', UDPAddr(...127.0.0.1, port=1234))
```

NAT translation:

```python
from ipaddress import ip_address
from vnetkit.vnet.chunk import ChunkUDP, UDPAddr
from vnetkit.vnet.nat import NATConfig, NATType, NetworkAddressTranslator

nat = NetworkAddressTranslator(
    NATConfig(nat_type=NATType(), mapped_ips=[ip_address("1.2.3.4")])
)
out = nat.translate_outbound(
    ChunkUDP(UDPAddr(ip_address("192.168.0.2"), 1234), UDPAddr(ip_address("5.6.7.8"), 5678))
)
print(out.source_addr())   # 1.2.3.4:49152
```

## What the package does not do

There is no router or network stack that moves chunks between connections.
It does not assign addresses, resolve names inside the virtual network or
apply the NAT to traffic by itself. A `UDPConn` hands outgoing chunks to the
observer you supply, and you deliver incoming ones with `on_inbound_chunk()`.
`ChunkTCP` describes TCP segments, but there is no TCP connection, and the
NAT translates UDP only. The package has no command-line program.

## Running the tests

```
pytest
```