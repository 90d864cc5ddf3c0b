"""Packets passed around inside the virtual network."""

from __future__ import annotations

import copy
import enum
import ipaddress
import itertools
import socket
import threading
import time
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

__all__ = [
    "TCPFlag",
    "UDPAddr",
    "TCPAddr",
    "Chunk",
    "ChunkUDP",
    "ChunkTCP",
    "assign_chunk_tag",
]

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_DIGITS36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_tag_counter = itertools.count(1)
_tag_lock = threading.Lock()


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_DIGITS36[rem])
    return "".join(reversed(digits))


def assign_chunk_tag() -> str:
    """Return a new unique base36-encoded tag."""
    with _tag_lock:
        n = next(_tag_counter)
    return _base36(n)


class TCPFlag(enum.IntFlag):
    """TCP control bits."""

    FIN = 0x01
    SYN = 0x02
    RST = 0x04
    PSH = 0x08
    ACK = 0x10

    def __str__(self) -> str:
        names = ("FIN", "SYN", "RST", "PSH", "ACK")
        return "-".join(name for name in names if self & TCPFlag[name])


def _to_ip(value: Union[str, IPAddress, None]) -> Optional[IPAddress]:
    if value is None or isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(value)


def _split_host_port(address: str) -> tuple[str, str]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address}: missing port in address")
    if host.startswith("["):
        if not host.endswith("]"):
            raise ValueError(f"address {address}: missing ']' in address")
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"address {address}: too many colons in address")
    return host, port


def _resolve(address: str) -> tuple[Optional[IPAddress], int]:
    host, port_text = _split_host_port(address)
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"address {address}: invalid port") from None
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"address {address}: invalid port")
    if not host:
        return None, port
    try:
        return ipaddress.ip_address(host), port
    except ValueError:
        pass
    try:
        infos = socket.getaddrinfo(host, None)
    except socket.gaierror as exc:
        raise ValueError(f"lookup {host}: {exc}") from exc
    ips = [ipaddress.ip_address(info[4][0].split("%")[0]) for info in infos]
    ipv4 = [ip for ip in ips if ip.version == 4]
    if ipv4:
        return ipv4[0], port
    if ips:
        return ips[0], port
    raise ValueError(f"lookup {host}: no such host")


@dataclass(frozen=True)
class _IPPortAddr:
    ip: Optional[IPAddress]
    port: int = 0

    NETWORK: ClassVar[str] = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", _to_ip(self.ip))

    @classmethod
    def resolve(cls, address: str):
        """Parse ``host:port``, resolving the host name if needed."""
        ip, port = _resolve(address)
        return cls(ip, port)

    def network(self) -> str:
        return self.NETWORK

    def __str__(self) -> str:
        if self.ip is None:
            return f":{self.port}"
        if self.ip.version == 6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class UDPAddr(_IPPortAddr):
    """UDP endpoint address."""

    NETWORK: ClassVar[str] = "udp"


@dataclass(frozen=True)
class TCPAddr(_IPPortAddr):
    """TCP endpoint address."""

    NETWORK: ClassVar[str] = "tcp"


class Chunk:
    """A packet travelling through the virtual network."""

    _addr_type: ClassVar[type[_IPPortAddr]] = _IPPortAddr

    def __init__(self, src_addr: _IPPortAddr, dst_addr: _IPPortAddr) -> None:
        self.timestamp: Optional[float] = None
        self.source_ip: Optional[IPAddress] = src_addr.ip
        self.destination_ip: Optional[IPAddress] = dst_addr.ip
        self.source_port: int = src_addr.port
        self.destination_port: int = dst_addr.port
        self.tag: str = assign_chunk_tag()
        self.user_data: bytes = b""

    def set_timestamp(self) -> float:
        """Stamp the chunk with the current time and return it."""
        self.timestamp = time.time()
        return self.timestamp

    def source_addr(self) -> _IPPortAddr:
        return self._addr_type(self.source_ip, self.source_port)

    def destination_addr(self) -> _IPPortAddr:
        return self._addr_type(self.destination_ip, self.destination_port)

    def set_source_addr(self, address: str) -> None:
        """Replace the source with ``host:port``; raise ValueError if invalid."""
        addr = self._addr_type.resolve(address)
        self.source_ip = addr.ip
        self.source_port = addr.port

    def set_destination_addr(self, address: str) -> None:
        """Replace the destination with ``host:port``; raise ValueError if invalid."""
        addr = self._addr_type.resolve(address)
        self.destination_ip = addr.ip
        self.destination_port = addr.port

    def network(self) -> str:
        """Return "udp" or "tcp"."""
        return self._addr_type.NETWORK

    def clone(self) -> "Chunk":
        return copy.copy(self)


class ChunkUDP(Chunk):
    """UDP datagram."""

    _addr_type = UDPAddr

    def __init__(self, src_addr: UDPAddr, dst_addr: UDPAddr) -> None:
        super().__init__(src_addr, dst_addr)

    def source_addr(self) -> UDPAddr:
        return UDPAddr(self.source_ip, self.source_port)

    def destination_addr(self) -> UDPAddr:
        return UDPAddr(self.destination_ip, self.destination_port)

    def set_source_addr(self, address: str) -> None:
        super().set_source_addr(address)

    def set_destination_addr(self, address: str) -> None:
        super().set_destination_addr(address)

    def set_timestamp(self) -> float:
        return super().set_timestamp()

    def network(self) -> str:
        return UDPAddr.NETWORK

    def clone(self) -> "ChunkUDP":
        return copy.copy(self)

    def __str__(self) -> str:
        src = self.source_addr()
        return f"{src.network()} chunk {self.tag} {src} => {self.destination_addr()}"


class ChunkTCP(Chunk):
    """TCP segment carrying control flags."""

    _addr_type = TCPAddr

    def __init__(self, src_addr: TCPAddr, dst_addr: TCPAddr, flags: TCPFlag) -> None:
        super().__init__(src_addr, dst_addr)
        self.flags = TCPFlag(flags)

    def source_addr(self) -> TCPAddr:
        return TCPAddr(self.source_ip, self.source_port)

    def destination_addr(self) -> TCPAddr:
        return TCPAddr(self.destination_ip, self.destination_port)

    def set_source_addr(self, address: str) -> None:
        super().set_source_addr(address)

    def set_destination_addr(self, address: str) -> None:
        super().set_destination_addr(address)

    def set_timestamp(self) -> float:
        return super().set_timestamp()

    def network(self) -> str:
        return TCPAddr.NETWORK

    def clone(self) -> "ChunkTCP":
        # A cloned segment carries neither the tag nor the flags.
        twin = copy.copy(self)
        twin.tag = ""
        twin.flags = TCPFlag(0)
        return twin

    def __str__(self) -> str:
        src = self.source_addr()
        return (
            f"{src.network()} {self.flags} chunk {self.tag} "
            f"{src} => {self.destination_addr()}"
        )