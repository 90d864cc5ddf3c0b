"""Packet-oriented UDP connection inside the virtual network."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Optional, Protocol

from vnetkit.packetio import ShortBufferError
from vnetkit.vnet.chunk import Chunk, ChunkUDP, IPAddress, UDPAddr

__all__ = [
    "VNetTimeoutError",
    "ConnClosedError",
    "AlreadyClosedError",
    "NoRemoteAddrError",
    "LocalAddrError",
    "ConnObserver",
    "UDPConn",
]

MAX_READ_QUEUE_SIZE = 1024


class VNetTimeoutError(TimeoutError):
    """An operation hit its deadline."""

    timeout = True

    def __init__(self, message: str = "i/o timeout") -> None:
        super().__init__(message)


class ConnClosedError(OSError):
    """Use of a closed network connection."""

    def __init__(self, message: str = "use of closed network connection") -> None:
        super().__init__(message)


class AlreadyClosedError(OSError):
    """The connection was closed before."""

    def __init__(self, message: str = "already closed") -> None:
        super().__init__(message)


class NoRemoteAddrError(OSError):
    """Write on a connection without a remote address."""

    def __init__(self, message: str = "no remAddr defined") -> None:
        super().__init__(message)


class LocalAddrError(OSError):
    """No source address could be chosen for the destination."""

    def __init__(self, message: str = "something went wrong with locAddr") -> None:
        super().__init__(message)


class ConnObserver(Protocol):
    """What a UDPConn needs from the network it belongs to."""

    def write(self, chunk: Chunk) -> None: ...

    def on_closed(self, addr: UDPAddr) -> None: ...

    def determine_source_ip(
        self, loc_ip: Optional[IPAddress], dst_ip: Optional[IPAddress]
    ) -> Optional[IPAddress]: ...


class UDPConn:
    """UDP connection usable both as a packet connection and a stream connection."""

    def __init__(
        self,
        loc_addr: UDPAddr,
        rem_addr: Optional[UDPAddr],
        obs: ConnObserver,
    ) -> None:
        if obs is None:
            raise ValueError("obs cannot be nil")
        self._loc_addr = loc_addr
        self._rem_addr = rem_addr
        self._obs = obs
        self._cond = threading.Condition()
        self._queue: deque[Chunk] = deque()
        self._closed = False
        self._read_deadline: Optional[float] = None

    def _op_message(self, text: str) -> str:
        return f"read {self._loc_addr.network()} {self._loc_addr}: {text}"

    def read_from(self, size: Optional[int] = None) -> tuple[bytes, UDPAddr]:
        """Return the next packet payload and its source address.

        Raises ShortBufferError (with ``addr`` set) if the payload is longer
        than ``size``, VNetTimeoutError when the read deadline passes and
        ConnClosedError once the connection is closed and drained.
        """
        with self._cond:
            while True:
                if self._queue:
                    chunk = self._queue.popleft()
                    addr = chunk.source_addr()
                    if self._rem_addr is not None and str(addr) != str(self._rem_addr):
                        continue
                    break
                if self._closed:
                    raise ConnClosedError(self._op_message("use of closed network connection"))
                if self._read_deadline is None:
                    self._cond.wait()
                    continue
                remaining = self._read_deadline - time.time()
                if remaining <= 0:
                    raise VNetTimeoutError(self._op_message("i/o timeout"))
                self._cond.wait(remaining)

        data = chunk.user_data
        if size is not None and len(data) > size:
            error = ShortBufferError(data[:size])
            error.addr = addr
            raise error
        return data, addr

    def write_to(self, data: bytes, addr: UDPAddr) -> int:
        """Send ``data`` to ``addr`` and return the number of bytes sent."""
        if not isinstance(addr, UDPAddr):
            raise TypeError("addr is not a UDPAddr")
        src_ip = self._obs.determine_source_ip(self._loc_addr.ip, addr.ip)
        if src_ip is None:
            raise LocalAddrError()
        chunk = ChunkUDP(UDPAddr(src_ip, self._loc_addr.port), addr)
        chunk.user_data = bytes(data)
        self._obs.write(chunk)
        return len(data)

    def close(self) -> None:
        """Close the connection, unblocking pending reads."""
        with self._cond:
            if self._closed:
                raise AlreadyClosedError()
            self._closed = True
            self._cond.notify_all()
        self._obs.on_closed(self._loc_addr)

    def local_addr(self) -> UDPAddr:
        return self._loc_addr

    def remote_addr(self) -> Optional[UDPAddr]:
        return self._rem_addr

    def set_deadline(self, when: Optional[float]) -> None:
        """Set the absolute read deadline; writes never block."""
        self.set_read_deadline(when)

    def set_read_deadline(self, when: Optional[float]) -> None:
        """Set the absolute deadline for reads; ``None`` removes it."""
        with self._cond:
            self._read_deadline = when
            self._cond.notify_all()

    def set_write_deadline(self, when: Optional[float]) -> None:
        """Accepted for compatibility; writes never block."""

    def read(self, size: Optional[int] = None) -> bytes:
        """Return the next packet payload."""
        data, _ = self.read_from(size)
        return data

    def write(self, data: bytes) -> int:
        """Send ``data`` to the remote address."""
        if self._rem_addr is None:
            raise NoRemoteAddrError()
        return self.write_to(data, self._rem_addr)

    def on_inbound_chunk(self, chunk: Optional[Chunk]) -> None:
        """Queue an arriving chunk; dropped when closed or the queue is full."""
        if chunk is None:
            return
        with self._cond:
            if self._closed or len(self._queue) >= MAX_READ_QUEUE_SIZE:
                return
            self._queue.append(chunk)
            self._cond.notify_all()