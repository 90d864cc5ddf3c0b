"""Packet buffer that keeps the boundaries between written packets."""

from __future__ import annotations

import threading
import time
from collections import deque

from vnetkit.deadline import Deadline

__all__ = [
    "BufferFullError",
    "PacketTooBigError",
    "BufferTimeoutError",
    "ShortBufferError",
    "BufferClosedError",
    "Buffer",
]

MIN_SIZE = 2048
CUTOFF_SIZE = 128 * 1024
MAX_SIZE = 4 * 1024 * 1024
MAX_PACKET_SIZE = 0x10000
_HEADER_SIZE = 2


class BufferFullError(Exception):
    """The buffer has hit its configured limits."""

    def __init__(self, message: str = "buffer is full, discarding write") -> None:
        super().__init__(message)


class PacketTooBigError(ValueError):
    """A packet of 65536 bytes or more was written."""

    def __init__(self, message: str = "packet too big") -> None:
        super().__init__(message)


class BufferTimeoutError(TimeoutError):
    """The read deadline expired."""

    timeout = True
    temporary = True

    def __init__(self, message: str = "i/o timeout") -> None:
        super().__init__(message)


class ShortBufferError(Exception):
    """The packet was longer than the requested read size.

    The truncated packet is kept in ``data``; the rest is discarded.
    """

    def __init__(self, data: bytes) -> None:
        super().__init__("short buffer")
        self.data = data


class BufferClosedError(Exception):
    """Write to a closed buffer."""

    def __init__(self, message: str = "io: read/write on closed pipe") -> None:
        super().__init__(message)


class Buffer:
    """FIFO of packets; each read returns exactly one written packet."""

    def __init__(self, size_hardlimit: bool = False) -> None:
        self._cond = threading.Condition()
        self._packets: deque[bytes] = deque()
        self._used = 0
        self._capacity = 0
        self._closed = False
        self._limit_count = 0
        self._limit_size = 0
        self._size_hardlimit = size_hardlimit
        self._read_deadline = Deadline()

    def _fits(self, length: int) -> bool:
        # One byte of slack is always kept free.
        return length + _HEADER_SIZE + 1 <= self._capacity - self._used

    def _grow(self) -> None:
        capacity = self._capacity
        new_size = 2 * capacity if capacity < CUTOFF_SIZE else 5 * capacity // 4
        new_size = max(new_size, MIN_SIZE)
        if (self._limit_size <= 0 or self._size_hardlimit) and new_size > MAX_SIZE:
            new_size = MAX_SIZE
        if self._limit_size > 0 and new_size > self._limit_size + 1:
            new_size = self._limit_size + 1
        if new_size <= capacity:
            raise BufferFullError()
        self._capacity = new_size

    def write(self, packet: bytes) -> int:
        """Append a copy of the packet and return its length."""
        if len(packet) >= MAX_PACKET_SIZE:
            raise PacketTooBigError()
        data = bytes(packet)
        with self._cond:
            if self._closed:
                raise BufferClosedError()
            if (self._limit_count > 0 and len(self._packets) >= self._limit_count) or (
                self._limit_size > 0
                and self._used + _HEADER_SIZE + len(data) > self._limit_size
            ):
                raise BufferFullError()
            while not self._fits(len(data)):
                self._grow()
            self._packets.append(data)
            self._used += len(data) + _HEADER_SIZE
            self._cond.notify_all()
        return len(data)

    def _wait(self) -> None:
        """Wait for a change; caller holds the condition lock."""
        if self._read_deadline.err() is not None:
            raise BufferTimeoutError()
        when, has_deadline = self._read_deadline.deadline()
        if not has_deadline:
            self._cond.wait()
            return
        remaining = when - time.time()
        if remaining <= 0:
            raise BufferTimeoutError()
        self._cond.wait(remaining)

    def read(self, size: int | None = None) -> bytes:
        """Return the next packet, blocking until one is available.

        Raises ShortBufferError if the packet is longer than ``size``,
        EOFError once the buffer is closed and empty, and
        BufferTimeoutError when the read deadline expires.
        """
        if self._read_deadline.err() is not None:
            raise BufferTimeoutError()
        with self._cond:
            while not self._packets:
                if self._closed:
                    raise EOFError("EOF")
                self._wait()
            packet = self._packets.popleft()
            self._used -= len(packet) + _HEADER_SIZE
        if size is not None and len(packet) > size:
            raise ShortBufferError(packet[:size])
        return packet

    def close(self) -> None:
        """Close the buffer; pending reads unblock, queued data stays readable."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

    def count(self) -> int:
        """Number of packets in the buffer."""
        with self._cond:
            return len(self._packets)

    def size(self) -> int:
        """Total bytes buffered, including two bytes of overhead per packet."""
        with self._cond:
            return self._used

    def set_limit_count(self, limit: int) -> None:
        """Limit the number of buffered packets; 0 disables the limit."""
        with self._cond:
            self._limit_count = limit

    def set_limit_size(self, limit: int) -> None:
        """Limit the buffered bytes; 0 means the 4 MiB default."""
        with self._cond:
            self._limit_size = limit

    def set_read_deadline(self, when: float | None) -> None:
        """Set the absolute read deadline; ``None`` removes it."""
        self._read_deadline.set(when)
        with self._cond:
            self._cond.notify_all()