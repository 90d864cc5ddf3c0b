import ipaddress

import pytest

from vnetkit.vnet.interface import Interface, NoAddressAssignedError


def test_no_address_raises():
    ifc = Interface(name="eth0", index=1)
    with pytest.raises(NoAddressAssignedError, match="no address assigned"):
        ifc.addrs()


def test_addresses_kept_in_order():
    ifc = Interface(name="eth0", index=1, mtu=1500)
    first = ipaddress.ip_interface("10.0.0.1/24")
    second = ipaddress.ip_interface("10.0.0.2/24")
    ifc.add_addr(first)
    ifc.add_addr(second)
    assert ifc.addrs() == [first, second]
    assert ifc.name == "eth0"
    assert ifc.mtu == 1500


def test_returned_list_is_a_copy():
    ifc = Interface(name="lo0")
    addr = ipaddress.ip_interface("127.0.0.1/8")
    ifc.add_addr(addr)
    listing = ifc.addrs()
    listing.clear()
    assert ifc.addrs() == [addr]