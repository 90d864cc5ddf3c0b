"""Virtual network interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

__all__ = ["NoAddressAssignedError", "Interface"]


class NoAddressAssignedError(LookupError):
    """The interface has no address."""

    def __init__(self, message: str = "no address assigned") -> None:
        super().__init__(message)


@dataclass
class Interface:
    """A network interface holding a list of addresses."""

    name: str = ""
    index: int = 0
    mtu: int = 0
    hardware_addr: bytes = b""
    flags: int = 0
    _addrs: list[Any] = field(default_factory=list, init=False, repr=False)

    def add_addr(self, addr: Any) -> None:
        """Assign another address to the interface."""
        self._addrs.append(addr)

    def addrs(self) -> list[Any]:
        """Return the assigned addresses; raise NoAddressAssignedError if none."""
        if not self._addrs:
            raise NoAddressAssignedError()
        return list(self._addrs)