"""Registry of UDP connections keyed by local port and IP."""

from __future__ import annotations

import ipaddress
import threading
from typing import Optional

from vnetkit.vnet.chunk import IPAddress, UDPAddr
from vnetkit.vnet.conn import UDPConn

__all__ = ["AddressInUseError", "NoSuchUDPConnError", "UDPConnMap"]


class AddressInUseError(OSError):
    """Another connection already listens on the address."""

    def __init__(self, message: str = "address already in use") -> None:
        super().__init__(message)


class NoSuchUDPConnError(LookupError):
    """No connection is bound to the address."""

    def __init__(self, message: str = "no such UDPConn") -> None:
        super().__init__(message)


class _CannotRemoveUnspecifiedIPError(OSError):
    def __init__(
        self, message: str = "cannot remove unspecified IP by the specified IP"
    ) -> None:
        super().__init__(message)


def _normalize(ip: Optional[IPAddress]) -> Optional[IPAddress]:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _is_unspecified(ip: Optional[IPAddress]) -> bool:
    ip = _normalize(ip)
    return ip is None or ip.is_unspecified


def _same_ip(a: Optional[IPAddress], b: Optional[IPAddress]) -> bool:
    return _normalize(a) == _normalize(b)


class UDPConnMap:
    """Thread-safe map of UDP listeners by port; several IPs may share a port."""

    def __init__(self) -> None:
        self._ports: dict[int, list[UDPConn]] = {}
        self._lock = threading.Lock()

    def insert(self, conn: UDPConn) -> None:
        """Register a connection; raise AddressInUseError if the address is taken."""
        addr = conn.local_addr()
        with self._lock:
            conns = self._ports.get(addr.port)
            if conns is None:
                self._ports[addr.port] = [conn]
                return
            if _is_unspecified(addr.ip):
                raise AddressInUseError()
            for existing in conns:
                laddr = existing.local_addr()
                if _is_unspecified(laddr.ip) or _same_ip(laddr.ip, addr.ip):
                    raise AddressInUseError()
            conns.append(conn)

    def find(self, addr: UDPAddr) -> Optional[UDPConn]:
        """Return the connection that receives packets for ``addr``, or None."""
        with self._lock:
            conns = self._ports.get(addr.port)
            if conns is None:
                return None
            if _is_unspecified(addr.ip):
                if not conns:
                    del self._ports[addr.port]
                    return None
                return conns[0]
            for conn in conns:
                laddr = conn.local_addr()
                if _is_unspecified(laddr.ip) or _same_ip(laddr.ip, addr.ip):
                    return conn
            return None

    def delete(self, addr: UDPAddr) -> None:
        """Remove the connection bound to ``addr``.

        An unspecified IP removes every connection on the port.
        """
        with self._lock:
            conns = self._ports.get(addr.port)
            if conns is None:
                raise NoSuchUDPConnError()
            if _is_unspecified(addr.ip):
                del self._ports[addr.port]
                return
            remaining = []
            for conn in conns:
                laddr = conn.local_addr()
                if _is_unspecified(laddr.ip):
                    raise _CannotRemoveUnspecifiedIPError()
                if _same_ip(laddr.ip, addr.ip):
                    continue
                remaining.append(conn)
            if remaining:
                self._ports[addr.port] = remaining
            else:
                del self._ports[addr.port]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(conns) for conns in self._ports.values())