import ipaddress
import threading
import time

import pytest

from vnetkit.packetio import ShortBufferError
from vnetkit.vnet.chunk import ChunkUDP, TCPAddr, UDPAddr
from vnetkit.vnet.conn import (
    AlreadyClosedError,
    ConnClosedError,
    LocalAddrError,
    NoRemoteAddrError,
    UDPConn,
    VNetTimeoutError,
)

SRC = UDPAddr("127.0.0.1", 1234)
DST = UDPAddr("127.0.0.1", 5678)


class EchoObserver:
    def __init__(self, source_ip=True):
        self.conn = None
        self.closed = []
        self.written = []
        self._source_ip = source_ip

    def write(self, chunk):
        self.written.append(chunk)
        echo = ChunkUDP(chunk.destination_addr(), chunk.source_addr())
        echo.user_data = bytes(chunk.user_data)
        self.conn.on_inbound_chunk(echo)

    def on_closed(self, addr):
        self.closed.append(addr)

    def determine_source_ip(self, loc_ip, dst_ip):
        return loc_ip if self._source_ip else None


def _conn(rem_addr=None, source_ip=True):
    obs = EchoObserver(source_ip)
    conn = UDPConn(SRC, rem_addr, obs)
    obs.conn = conn
    return conn, obs


def test_write_to_read_from():
    conn, obs = _conn()
    data = b"Hello"
    assert conn.write_to(data, DST) == len(data)
    got, addr = conn.read_from(1500)
    assert got == data
    assert str(addr) == str(DST)
    conn.close()
    assert obs.closed == [SRC]


def test_write_read():
    conn, obs = _conn(rem_addr=DST)
    data = b"Hello"
    assert conn.write(data) == len(data)
    assert conn.read(1500) == data
    conn.close()
    assert len(obs.closed) == 1


def test_blocked_read_unblocked_by_close():
    conn, obs = _conn()
    errors = []

    def reader():
        try:
            conn.read_from(1500)
        except ConnClosedError as exc:
            errors.append(exc)

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.02)
    conn.close()
    t.join(2)
    assert not t.is_alive()
    assert len(errors) == 1
    assert "use of closed network connection" in str(errors[0])
    assert len(obs.closed) == 1


@pytest.mark.parametrize("read_only", [True, False])
def test_deadline(read_only):
    conn, obs = _conn()
    when = time.time() + 0.05
    if read_only:
        conn.set_read_deadline(when)
    else:
        conn.set_deadline(when)
    with pytest.raises(VNetTimeoutError) as info:
        conn.read_from(1500)
    assert info.value.timeout is True
    assert time.time() >= when
    conn.close()
    assert len(obs.closed) == 1


def test_inbound_after_close_is_dropped():
    conn, _ = _conn()
    conn.close()
    conn.on_inbound_chunk(ChunkUDP(DST, SRC))
    conn.on_inbound_chunk(None)
    with pytest.raises(ConnClosedError):
        conn.read_from(1500)


def test_queued_data_readable_after_close():
    conn, _ = _conn()
    conn.write_to(b"abc", DST)
    conn.close()
    assert conn.read(10) == b"abc"
    with pytest.raises(ConnClosedError):
        conn.read(10)


def test_close_twice():
    conn, obs = _conn()
    conn.close()
    with pytest.raises(AlreadyClosedError):
        conn.close()
    assert len(obs.closed) == 1


def test_write_without_remote():
    conn, _ = _conn()
    with pytest.raises(NoRemoteAddrError):
        conn.write(b"x")


def test_write_to_requires_udp_addr():
    conn, _ = _conn()
    with pytest.raises(TypeError):
        conn.write_to(b"x", TCPAddr("127.0.0.1", 5678))


def test_write_to_without_source_ip():
    conn, obs = _conn(source_ip=False)
    with pytest.raises(LocalAddrError):
        conn.write_to(b"x", DST)
    assert obs.written == []


def test_observer_required():
    with pytest.raises(ValueError):
        UDPConn(SRC, None, None)


def test_source_of_written_chunk():
    conn, obs = _conn()
    conn.write_to(b"Hello", DST)
    chunk = obs.written[0]
    assert chunk.source_ip == ipaddress.ip_address("127.0.0.1")
    assert chunk.source_port == 1234
    assert chunk.user_data == b"Hello"


def test_remote_filter_discards_other_sources():
    conn, _ = _conn(rem_addr=DST)
    stray = ChunkUDP(UDPAddr("10.0.0.9", 9), SRC)
    stray.user_data = b"stray"
    conn.on_inbound_chunk(stray)
    wanted = ChunkUDP(DST, SRC)
    wanted.user_data = b"wanted"
    conn.on_inbound_chunk(wanted)
    assert conn.read(100) == b"wanted"


def test_short_buffer():
    conn, _ = _conn()
    conn.write_to(b"Hello", DST)
    with pytest.raises(ShortBufferError) as info:
        conn.read_from(3)
    assert info.value.data == b"Hel"
    assert info.value.addr == DST


def test_addresses():
    conn, _ = _conn(rem_addr=DST)
    assert conn.local_addr() == SRC
    assert conn.remote_addr() == DST