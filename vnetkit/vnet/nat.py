"""Network address translator for the virtual network."""

from __future__ import annotations

import dataclasses
import enum
import ipaddress
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from vnetkit.vnet.chunk import Chunk, IPAddress, UDPAddr

__all__ = [
    "EndpointDependencyType",
    "NATMode",
    "NATType",
    "NATError",
    "NATConfig",
    "NetworkAddressTranslator",
]

DEFAULT_NAT_MAPPING_LIFE_TIME = 30.0
_UDP = "udp"


class EndpointDependencyType(enum.IntEnum):
    """How a NAT behaviour depends on the remote endpoint (RFC 4787)."""

    ENDPOINT_INDEPENDENT = 0
    ENDPOINT_ADDR_DEPENDENT = 1
    ENDPOINT_ADDR_PORT_DEPENDENT = 2


class NATMode(enum.IntEnum):
    """Basic behaviour of the NAT."""

    NORMAL = 0
    NAT_1TO1 = 1


@dataclass
class NATType:
    """Parameters defining NAT behaviour; lifetimes are in seconds."""

    mode: NATMode = NATMode.NORMAL
    mapping_behavior: EndpointDependencyType = EndpointDependencyType.ENDPOINT_INDEPENDENT
    filtering_behavior: EndpointDependencyType = EndpointDependencyType.ENDPOINT_INDEPENDENT
    hairpining: bool = False
    port_preservation: bool = False
    mapping_life_time: float = 0.0


class NATError(Exception):
    """NAT configuration failed or a chunk was dropped."""


@dataclass
class NATConfig:
    """Settings for a NetworkAddressTranslator."""

    name: str = ""
    nat_type: NATType = field(default_factory=NATType)
    mapped_ips: Sequence[Union[str, IPAddress]] = field(default_factory=list)
    local_ips: Sequence[Union[str, IPAddress]] = field(default_factory=list)
    logger: Optional[logging.Logger] = None


@dataclass
class _Mapping:
    proto: str
    local: str
    mapped: str
    bound: str
    filters: set[str]
    expires: float


def _normalize(ip: Union[str, IPAddress, None]) -> Optional[IPAddress]:
    if ip is None:
        return None
    if isinstance(ip, str):
        ip = ipaddress.ip_address(ip)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


class NetworkAddressTranslator:
    """Translates UDP chunks between a private and a public address space."""

    def __init__(self, config: NATConfig) -> None:
        nat_type = dataclasses.replace(config.nat_type)
        mapped_ips = [_normalize(ip) for ip in config.mapped_ips]
        local_ips = [_normalize(ip) for ip in config.local_ips]

        if nat_type.mode == NATMode.NAT_1TO1:
            nat_type.mapping_behavior = EndpointDependencyType.ENDPOINT_INDEPENDENT
            nat_type.filtering_behavior = EndpointDependencyType.ENDPOINT_INDEPENDENT
            nat_type.port_preservation = True
            nat_type.mapping_life_time = 0.0
            if not mapped_ips:
                raise NATError("1:1 NAT requires more than one mapping")
            if len(mapped_ips) != len(local_ips):
                raise NATError("length mismatch between mappedIPs and localIPs")
        else:
            nat_type.mode = NATMode.NORMAL
            if nat_type.mapping_life_time == 0:
                nat_type.mapping_life_time = DEFAULT_NAT_MAPPING_LIFE_TIME

        self.name = config.name
        self.nat_type = nat_type
        self.mapped_ips = mapped_ips
        self.local_ips = local_ips
        self.outbound_map: dict[str, _Mapping] = {}
        self.inbound_map: dict[str, _Mapping] = {}
        self._udp_port_counter = 0
        self._lock = threading.Lock()
        self._log = config.logger or logging.getLogger("vnet")

    def _paired_mapped_ip(self, local_ip: Optional[IPAddress]) -> Optional[IPAddress]:
        target = _normalize(local_ip)
        for local, mapped in zip(self.local_ips, self.mapped_ips):
            if local == target:
                return mapped
        return None

    def _paired_local_ip(self, mapped_ip: Optional[IPAddress]) -> Optional[IPAddress]:
        target = _normalize(mapped_ip)
        for mapped, local in zip(self.mapped_ips, self.local_ips):
            if mapped == target:
                return local
        return None

    @staticmethod
    def _endpoint_key(
        behavior: EndpointDependencyType, ip: Optional[IPAddress], addr: UDPAddr
    ) -> str:
        if behavior == EndpointDependencyType.ENDPOINT_ADDR_DEPENDENT:
            return str(ip)
        if behavior == EndpointDependencyType.ENDPOINT_ADDR_PORT_DEPENDENT:
            return str(addr)
        return ""

    def translate_outbound(self, chunk: Chunk) -> Optional[Chunk]:
        """Translate a chunk leaving the private side.

        Returns None when a 1:1 NAT has no route for the source and the chunk
        is silently dropped.
        """
        with self._lock:
            if chunk.network() != _UDP:
                raise NATError("non-udp translation is not supported yet")
            translated = chunk.clone()

            if self.nat_type.mode == NATMode.NAT_1TO1:
                src = chunk.source_addr()
                src_ip = self._paired_mapped_ip(src.ip)
                if src_ip is None:
                    self._log.debug("[%s] drop outbound chunk %s with no route", self.name, chunk)
                    return None
                translated.set_source_addr(str(UDPAddr(src_ip, src.port)))
            else:
                dst_addr = chunk.destination_addr()
                bound = self._endpoint_key(
                    self.nat_type.mapping_behavior, chunk.destination_ip, dst_addr
                )
                filter_key = self._endpoint_key(
                    self.nat_type.filtering_behavior, chunk.destination_ip, dst_addr
                )
                src_addr = chunk.source_addr()
                o_key = f"udp:{src_addr}:{bound}"

                mapping = self._find_outbound_mapping(o_key)
                if mapping is None:
                    mapped_port = 0xC000 + self._udp_port_counter
                    self._udp_port_counter += 1
                    mapping = _Mapping(
                        proto=src_addr.network(),
                        local=str(src_addr),
                        mapped=str(UDPAddr(self.mapped_ips[0], mapped_port)),
                        bound=bound,
                        filters={filter_key},
                        expires=time.monotonic() + self.nat_type.mapping_life_time,
                    )
                    self.outbound_map[o_key] = mapping
                    i_key = f"udp:{mapping.mapped}"
                    self._log.debug(
                        "[%s] created a new NAT binding oKey=%s iKey=%s", self.name, o_key, i_key
                    )
                    self._log.debug(
                        "[%s] permit access from %s to %s", self.name, filter_key, mapping.mapped
                    )
                    self.inbound_map[i_key] = mapping
                elif filter_key not in mapping.filters:
                    self._log.debug(
                        "[%s] permit access from %s to %s", self.name, filter_key, mapping.mapped
                    )
                    mapping.filters.add(filter_key)

                translated.set_source_addr(mapping.mapped)

            self._log.debug(
                "[%s] translate outbound chunk from %s to %s", self.name, chunk, translated
            )
            return translated

    def translate_inbound(self, chunk: Chunk) -> Chunk:
        """Translate a chunk arriving from the public side; raise NATError to drop it."""
        with self._lock:
            if chunk.network() != _UDP:
                raise NATError("non-udp translation is not supported yet")
            translated = chunk.clone()

            if self.nat_type.mode == NATMode.NAT_1TO1:
                dst = chunk.destination_addr()
                dst_ip = self._paired_local_ip(dst.ip)
                if dst_ip is None:
                    raise NATError(f"drop {chunk} as no associated local address")
                translated.set_destination_addr(str(UDPAddr(dst_ip, dst.port)))
            else:
                i_key = f"udp:{chunk.destination_addr()}"
                mapping = self._find_inbound_mapping(i_key)
                if mapping is None:
                    raise NATError(f"drop {chunk} as no NAT binding found")

                filter_key = self._endpoint_key(
                    self.nat_type.filtering_behavior, chunk.source_ip, chunk.source_addr()
                )
                if filter_key not in mapping.filters:
                    raise NATError(f"drop {chunk} as the remote {filter_key} has no permission")

                # Inbound traffic deliberately does not refresh the mapping
                # (RFC 4787 section 4.3).
                translated.set_destination_addr(mapping.local)

            self._log.debug(
                "[%s] translate inbound chunk from %s to %s", self.name, chunk, translated
            )
            return translated

    def _find_outbound_mapping(self, o_key: str) -> Optional[_Mapping]:
        mapping = self.outbound_map.get(o_key)
        if mapping is None:
            return None
        now = time.monotonic()
        if now > mapping.expires:
            self._remove_mapping(mapping)
            return None
        mapping.expires = now + self.nat_type.mapping_life_time
        return mapping

    def _find_inbound_mapping(self, i_key: str) -> Optional[_Mapping]:
        mapping = self.inbound_map.get(i_key)
        if mapping is None:
            return None
        if time.monotonic() > mapping.expires:
            self._remove_mapping(mapping)
            return None
        return mapping

    def _remove_mapping(self, mapping: _Mapping) -> None:
        self.outbound_map.pop(f"{mapping.proto}:{mapping.local}:{mapping.bound}", None)
        self.inbound_map.pop(f"{mapping.proto}:{mapping.mapped}", None)