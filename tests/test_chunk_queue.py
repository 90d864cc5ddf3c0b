from vnetkit.vnet.chunk import ChunkUDP, UDPAddr
from vnetkit.vnet.chunk_queue import ChunkQueue

DEMO_IP = "1.2.3.4"


def _chunk():
    return ChunkUDP(UDPAddr("192.188.0.2", 1234), UDPAddr(DEMO_IP, 5678))


def test_unlimited_queue():
    c = _chunk()
    q = ChunkQueue(0)
    assert q.peek() is None
    assert q.push(c) is True
    assert q.pop() is c
    assert q.pop() is None


def test_limited_queue():
    c = _chunk()
    q = ChunkQueue(1)
    assert q.push(c) is True
    assert q.push(c) is False
    assert q.peek() is c


def test_fifo_order():
    q = ChunkQueue()
    chunks = [_chunk() for _ in range(3)]
    for c in chunks:
        assert q.push(c)
    assert [q.pop() for _ in range(3)] == chunks