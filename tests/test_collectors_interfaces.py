import asyncio
import json

import pytest

from collectors.interfaces import (
    LinuxInterfaceCollector,
    WindowsInterfaceCollector,
    WslGuestInterfaceCollector,
    parse_brief_addresses,
    parse_brief_links,
    parse_windows_interfaces,
)
from core.errors import ParseError, Unavailable
from core.schemas import Domain, InterfaceOrigin, IPVersion

IP_BRIEF_ADDR = """\
lo               UNKNOWN        127.0.0.1/8 ::1/128
eth0             UP             172.20.11.89/20 fe80::215:5dff:fef9:e225/64
docker0          DOWN           172.17.0.1/16
veth12ab@if5     UP
"""

IP_BRIEF_LINK = """\
lo               UNKNOWN        00:00:00:00:00:00 <LOOPBACK,UP,LOWER_UP>
eth0             UP             00:15:5d:f9:e2:25 <BROADCAST,MULTICAST,UP,LOWER_UP>
docker0          DOWN           02:42:5a:1b:2c:3d <NO-CARRIER,BROADCAST,MULTICAST,UP>
veth12ab@if5     UP             6a:11:22:33:44:55 <BROADCAST,MULTICAST,UP,LOWER_UP>
"""


def test_parse_brief_addresses():
    interfaces = parse_brief_addresses(IP_BRIEF_ADDR, InterfaceOrigin.HOST)
    by_name = {i.name: i for i in interfaces}

    assert list(by_name) == ["lo", "eth0", "docker0", "veth12ab"]
    assert by_name["lo"].is_loopback and by_name["lo"].is_up
    assert by_name["eth0"].ipv4_addresses == ("172.20.11.89",)
    assert by_name["eth0"].addresses[1].version == IPVersion.V6
    assert by_name["docker0"].is_up is False
    assert by_name["veth12ab"].addresses == ()


def test_parse_brief_addresses_rejects_bad_address():
    with pytest.raises(ParseError) as info:
        parse_brief_addresses("eth0 UP 999.1.1.1/24\n", InterfaceOrigin.HOST)
    assert "999.1.1.1" in info.value.raw_snippet


def test_parse_brief_addresses_rejects_line_without_state():
    with pytest.raises(ParseError):
        parse_brief_addresses("eth0\n", InterfaceOrigin.HOST)


def test_parse_brief_addresses_with_ttp_template_keeps_tool_order():
    raw = "wg0 UNKNOWN 10.66.0.2/32\nbr-1a2b DOWN\neth0 UP 10.0.0.5/24 10.0.0.6/24\n"

    interfaces = parse_brief_addresses(raw, InterfaceOrigin.GUEST)

    assert [i.name for i in interfaces] == ["wg0", "br-1a2b", "eth0"]
    assert interfaces[0].is_up and not interfaces[1].is_up
    assert interfaces[1].addresses == ()
    assert interfaces[2].ipv4_addresses == ("10.0.0.5", "10.0.0.6")


def test_parse_brief_links_with_ttp_template():
    macs = parse_brief_links(IP_BRIEF_LINK)
    assert macs["eth0"] == "00:15:5d:f9:e2:25"
    assert macs["veth12ab"] == "6a:11:22:33:44:55"


def test_parse_windows_interfaces_single_object_and_arrays():
    ips = [
        {"InterfaceAlias": "Ethernet", "IPAddress": "192.168.0.20", "AddressFamily": 2, "PrefixLength": 24},
        {"InterfaceAlias": "Ethernet", "IPAddress": "fe80::1%12", "AddressFamily": 23, "PrefixLength": 64},
        {"InterfaceAlias": "Loopback Pseudo-Interface 1", "IPAddress": "127.0.0.1", "AddressFamily": "IPv4", "PrefixLength": 8},
    ]
    adapters = [
        {"Name": "Ethernet", "Status": "Up", "MacAddress": "00-15-5D-01-02-03"},
        {"Name": "Wi-Fi", "Status": "Disconnected", "MacAddress": "AA-BB-CC-DD-EE-FF"},
    ]
    interfaces = parse_windows_interfaces(ips, adapters)
    by_name = {i.name: i for i in interfaces}

    assert list(by_name) == ["Ethernet", "Loopback Pseudo-Interface 1", "Wi-Fi"]
    assert by_name["Ethernet"].mac_address == "00:15:5D:01:02:03"
    assert by_name["Ethernet"].ipv6_addresses == ("fe80::1",)
    assert by_name["Loopback Pseudo-Interface 1"].is_loopback
    assert by_name["Wi-Fi"].is_up is False
    assert by_name["Wi-Fi"].addresses == ()


def _scripted_run(outputs):
    async def _run(*argv):
        key = " ".join(argv)
        for fragment, value in outputs.items():
            if fragment in key:
                if isinstance(value, Exception):
                    raise value
                return value
        raise AssertionError(f"unexpected command: {key}")

    return _run


def test_linux_collector_merges_macs(monkeypatch):
    collector = LinuxInterfaceCollector(timeout=2)
    monkeypatch.setattr(
        collector, "_run",
        _scripted_run({"addr show": IP_BRIEF_ADDR, "link show": IP_BRIEF_LINK}),
    )
    result = asyncio.run(collector.collect())

    assert result.ok
    assert result.domain == Domain.HOST
    eth0 = next(i for i in result.records.interfaces if i.name == "eth0")
    assert eth0.mac_address == "00:15:5D:F9:E2:25"


def test_linux_collector_survives_missing_link_listing(monkeypatch):
    collector = LinuxInterfaceCollector(timeout=2)
    monkeypatch.setattr(
        collector, "_run",
        _scripted_run({"addr show": IP_BRIEF_ADDR, "link show": Unavailable("no link")}),
    )
    result = asyncio.run(collector.collect())

    assert result.ok
    assert all(i.mac_address is None for i in result.records.interfaces)


def test_wsl_guest_collector_uses_wsl_prefix_and_guest_origin(monkeypatch):
    seen = []

    async def _run(*argv):
        seen.append(argv)
        return IP_BRIEF_ADDR if "addr" in argv else IP_BRIEF_LINK

    collector = WslGuestInterfaceCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert collector.domain == Domain.GUEST
    assert all(argv[:2] == ("wsl.exe", "-e") for argv in seen)
    assert {i.origin for i in result.records.interfaces} == {InterfaceOrigin.GUEST}


def test_windows_collector_accepts_single_json_object(monkeypatch):
    ip_json = json.dumps(
        {"InterfaceAlias": "Ethernet", "IPAddress": "10.0.0.5", "AddressFamily": 2, "PrefixLength": 8}
    )
    adapter_json = json.dumps({"Name": "Ethernet", "Status": "Up", "MacAddress": "00-11-22-33-44-55"})

    async def _run(*argv):
        return ip_json if "Get-NetIPAddress" in argv[-1] else adapter_json

    collector = WindowsInterfaceCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert result.ok
    [iface] = result.records.interfaces
    assert iface.name == "Ethernet" and iface.ipv4_addresses == ("10.0.0.5",)


def test_windows_collector_reports_parse_error_on_bad_json(monkeypatch):
    async def _run(*argv):
        return "{not json"

    collector = WindowsInterfaceCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert not result.ok
    assert isinstance(result.error, ParseError)
    assert result.records.is_empty
