import asyncio

from collectors.firewall import (
    LinuxFirewallCollector,
    WindowsFirewallCollector,
    parse_iptables_rules,
    parse_windows_firewall_rules,
)
from collectors.routing import (
    LinuxRouteCollector,
    parse_ip_route,
    parse_windows_routes,
    sort_routes,
)
from core.errors import PermissionDenied, Unavailable
from core.schemas import RuleAction, RuleDirection

IPTABLES_S = """\
-P INPUT DROP
-P FORWARD DROP
-P OUTPUT ACCEPT
-N DOCKER
-A INPUT -i lo -j ACCEPT
-A INPUT -p tcp -m tcp --dport 22 -m comment --comment "allow ssh" -j ACCEPT
-A INPUT -s 10.0.0.0/8 -j DROP
-A INPUT ! -s 192.168.0.0/16 -p udp --dport 53 -j REJECT
-A FORWARD -j DOCKER
-A OUTPUT -p tcp --dport 25 -j REJECT
"""

IP_ROUTE = """\
default via 172.24.160.1 dev eth0 proto dhcp metric 100
172.24.160.0/20 dev eth0 proto kernel scope link src 172.24.170.5 metric 100
10.8.0.1 dev tun0 scope link
blackhole 10.99.0.0/16 proto static
"""

IP6_ROUTE = """\
fe80::/64 dev eth0 proto kernel metric 256 pref medium
default proto ra metric 1024 pref medium
\tnexthop via fe80::1 dev eth0 weight 1
"""


def test_parse_iptables_rules():
    rules = parse_iptables_rules(IPTABLES_S)
    names = [r.name for r in rules]

    assert names == [
        "policy INPUT",
        "policy FORWARD",
        "policy OUTPUT",
        "INPUT #1",
        "allow ssh",
        "INPUT #3",
        "INPUT #4",
        "OUTPUT #1",
    ]
    ssh = rules[4]
    assert (ssh.action, ssh.protocol, ssh.local_port) == (RuleAction.ALLOW, "tcp", "22")
    drop = rules[5]
    assert drop.action == RuleAction.BLOCK and drop.remote_address == "10.0.0.0/8"
    negated = rules[6]
    assert negated.remote_address == "!192.168.0.0/16"
    smtp = rules[7]
    assert smtp.direction == RuleDirection.OUTBOUND and smtp.remote_port == "25"
    assert all(r.raw for r in rules)


def test_parse_windows_firewall_rules():
    items = [
        {"Name": "Remote Desktop", "Enabled": "True", "Direction": "Inbound", "Action": "Allow",
         "Protocol": "TCP", "LocalPort": "3389", "RemotePort": "Any",
         "LocalAddress": "Any", "RemoteAddress": "LocalSubnet"},
        {"Name": "Block Telnet", "Enabled": "False", "Direction": "Outbound", "Action": "Block",
         "Protocol": "TCP", "LocalPort": "", "RemotePort": "23"},
    ]
    rdp, telnet = parse_windows_firewall_rules(items)

    assert rdp.enabled and rdp.local_port == "3389" and rdp.remote_address == "LocalSubnet"
    assert not telnet.enabled
    assert telnet.direction == RuleDirection.OUTBOUND and telnet.action == RuleAction.BLOCK
    assert telnet.local_port == "any"


def test_windows_firewall_reads_localized_names_as_utf8(monkeypatch):
    commands = []

    async def _run(*argv):
        commands.append(argv[-1])
        return (
            '{"Name": "Área de Trabalho Remota", "Enabled": "True", '
            '"Direction": "Inbound", "Action": "Allow", "Protocol": "TCP"}'
        )

    collector = WindowsFirewallCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert "UTF8Encoding" in commands[0]
    assert result.records.firewall_rules[0].name == "Área de Trabalho Remota"


def test_firewall_permission_denied_is_not_masked_by_samples(monkeypatch):
    async def _run(*argv):
        raise PermissionDenied("iptables: Permission denied (you must be root)")

    collector = LinuxFirewallCollector(timeout=2, synthetic_fallback=True)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert isinstance(result.error, PermissionDenied)
    assert result.records.is_empty


def test_firewall_unavailable_uses_tagged_samples_when_enabled(monkeypatch):
    async def _run(*argv):
        raise Unavailable("iptables not found")

    collector = LinuxFirewallCollector(timeout=2, synthetic_fallback=True)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert not result.ok
    assert result.records.synthetic
    assert result.records.firewall_rules
    assert all(r.synthetic for r in result.records.firewall_rules)


def test_parse_ip_route_sorted_by_metric():
    routes = sort_routes(parse_ip_route(IP_ROUTE) + parse_ip_route(IP6_ROUTE, ipv6=True))

    assert [r.metric for r in routes] == sorted(r.metric for r in routes)
    by_dest = {r.destination: r for r in routes}
    assert by_dest["0.0.0.0/0"].gateway == "172.24.160.1"
    assert by_dest["10.8.0.1/32"].interface == "tun0"
    assert by_dest["10.99.0.0/16"].interface == ""
    assert by_dest["172.24.160.0/20"].scope == "link"
    v6_default = by_dest["::/0"]
    assert (v6_default.gateway, v6_default.interface) == ("fe80::1", "eth0")


def test_ipv6_default_without_gateway_keeps_its_family():
    line = "default dev wg0 proto static metric 1024 pref medium\n"

    (v6_default,) = parse_ip_route(line, ipv6=True)
    (v4_default,) = parse_ip_route(line)

    assert (v6_default.destination, v6_default.gateway) == ("::/0", None)
    assert v6_default.interface == "wg0"
    assert v4_default.destination == "0.0.0.0/0"


def test_parse_ip_route_keeps_tool_order_for_equal_metrics():
    routes = parse_ip_route("10.1.0.0/16 dev a\n10.2.0.0/16 dev b\n10.3.0.0/16 dev c\n")
    assert [r.interface for r in routes] == ["a", "b", "c"]


def test_parse_windows_routes_sums_metrics_and_drops_unspecified_hop():
    items = [
        {"DestinationPrefix": "0.0.0.0/0", "NextHop": "192.168.0.1", "InterfaceAlias": "Ethernet",
         "RouteMetric": 0, "InterfaceMetric": 25},
        {"DestinationPrefix": "192.168.0.0/24", "NextHop": "0.0.0.0", "InterfaceAlias": "Ethernet",
         "RouteMetric": 256, "InterfaceMetric": 25},
    ]
    default, lan = parse_windows_routes(items)
    assert (default.metric, default.gateway) == (25, "192.168.0.1")
    assert (lan.metric, lan.gateway) == (281, None)


def test_linux_route_collector_ignores_ipv6_failure(monkeypatch):
    async def _run(*argv):
        if "-6" in argv:
            raise Unavailable("ipv6 disabled")
        return IP_ROUTE

    collector = LinuxRouteCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert result.ok
    assert len(result.records.routes) == 4


def test_linux_route_collector_tags_each_family_by_command(monkeypatch):
    async def _run(*argv):
        if "-6" in argv:
            return "default dev wg0 proto static metric 1024 pref medium\n"
        return IP_ROUTE

    collector = LinuxRouteCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    destinations = [r.destination for r in result.records.routes]
    assert destinations.count("0.0.0.0/0") == 1
    assert destinations[-1] == "::/0"
