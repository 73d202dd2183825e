import ipaddress

from nxhost import ndp


def test_parse_mac_short_octets():
    assert ndp.parse_mac("0:1:2:3:4:5") == bytes([0, 1, 2, 3, 4, 5])


def test_parse_mac_invalid():
    assert ndp.parse_mac("0:1:2") is None
    assert ndp.parse_mac("zz:zz:zz:zz:zz:zz") is None


def test_parse_ndp_output():
    data = (
        "Neighbor Linklayer Address Netif Expire S Flags\n"
        "fe80::1%en0 2:0:0:0:0:1 en0 permanent R\n"
        "fe80::2%en0 (incomplete) en0 expired N\n"
    )
    t = ndp.parse_ndp_output(data)
    assert len(t) == 1
    assert t[0].ip == ipaddress.ip_address("fe80::1")
    assert t[0].mac == bytes([2, 0, 0, 0, 0, 1])


def test_parse_netsh_output():
    data = "fe80::1   02-00-00-00-00-01   Reachable\nshort line\n"
    t = ndp.parse_netsh_output(data)
    assert t.search_mac("fe80::1") == bytes([2, 0, 0, 0, 0, 1])


def test_table_search_round_trip():
    mac = bytes([2, 0, 0, 0, 0, 9])
    t = ndp.Table([ndp.Entry(ipaddress.ip_address("fe80::9"), mac)])
    assert t.search_ip(t.search_mac("fe80::9")) == ipaddress.ip_address("fe80::9")
    assert t.search_mac("fe80::10") is None
    assert t.search_ip(b"\x00" * 6) is None