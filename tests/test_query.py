import pytest
from pydantic import ValidationError

from core.query import (
    FilterCriteria,
    PortMatch,
    SortKey,
    available_interfaces,
    filter_ports,
    ports_for_interface,
    search_firewall_rules,
    search_interfaces,
    sorted_routes,
)
from core.schemas import (
    Domain,
    DomainRecords,
    FirewallRule,
    PortDirection,
    Route,
    Snapshot,
    Transport,
)


def _ports(result):
    return [b.port for b in result]


def test_no_criteria_returns_everything_in_order(sample_snapshot):
    assert _ports(filter_ports(sample_snapshot, FilterCriteria())) == [80, 8080, 53, 443, 22]


def test_filter_is_pure(sample_snapshot):
    before = sample_snapshot.model_dump()
    criteria = FilterCriteria(text="nginx", sort_by=SortKey.PORT, descending=True)

    first = filter_ports(sample_snapshot, criteria)
    second = filter_ports(sample_snapshot, criteria)

    assert first == second
    assert sample_snapshot.model_dump() == before


@pytest.mark.parametrize(
    "criteria,expected",
    [
        (FilterCriteria(text="NGINX"), [80, 443]),
        (FilterCriteria(text="127.0.0.53"), [53]),
        (FilterCriteria(text="udp"), [53]),
        (FilterCriteria(text="200"), [8080]),
        (FilterCriteria(process_name="resolved"), [53]),
        (FilterCriteria(port="80"), [80]),
        (FilterCriteria(port="80", port_match=PortMatch.PREFIX), [80, 8080]),
        (FilterCriteria(pid=100), [80, 443]),
        (FilterCriteria(protocol=Transport.UDP), [53]),
        (FilterCriteria(direction=PortDirection.OUTBOUND), []),
        (FilterCriteria(text="nginx", port="443"), [443]),
    ],
)
def test_filter_criteria(sample_snapshot, criteria, expected):
    assert _ports(filter_ports(sample_snapshot, criteria)) == expected


def test_sort_by_pid_places_unknown_last(sample_snapshot):
    result = filter_ports(sample_snapshot, FilterCriteria(sort_by=SortKey.PID))
    assert [b.pid for b in result] == [100, 100, 200, 300, None]
    # estável: 80 antes de 443 (mesmo PID)
    assert _ports(result)[:2] == [80, 443]


def test_sort_by_process_name_descending(sample_snapshot):
    result = filter_ports(
        sample_snapshot, FilterCriteria(sort_by=SortKey.PROCESS_NAME, descending=True)
    )
    assert [b.process_name for b in result] == [
        "systemd-resolved", "sshd", "nginx", "nginx", "java",
    ]


def test_criteria_reject_negative_pid():
    with pytest.raises(ValidationError):
        FilterCriteria(pid=-1)


def test_ports_for_interface_includes_wildcards(sample_snapshot):
    eth0 = sample_snapshot.interfaces[0]
    assert _ports(ports_for_interface(sample_snapshot, eth0)) == [80, 8080, 443, 22]


def test_available_interfaces_skip_down_and_loopback(sample_snapshot):
    assert [i.name for i in available_interfaces(sample_snapshot)] == ["eth0"]


def test_search_interfaces_by_address(sample_snapshot):
    assert [i.name for i in search_interfaces(sample_snapshot, "fe80::")] == ["eth0"]
    assert len(search_interfaces(sample_snapshot, "")) == 3


def test_sorted_routes_and_firewall_search():
    snapshot = Snapshot(
        records={
            Domain.ROUTES: DomainRecords(
                routes=(
                    Route(destination="10.0.0.0/8", interface="eth0", metric=600),
                    Route(destination="0.0.0.0/0", gateway="10.0.0.1", interface="eth0", metric=100),
                )
            ),
            Domain.FIREWALL: DomainRecords(
                firewall_rules=(
                    FirewallRule(name="Allow SSH", direction="inbound", action="allow", local_port="22"),
                    FirewallRule(name="Block All", direction="inbound", action="block"),
                )
            ),
        }
    )
    assert [r.metric for r in sorted_routes(snapshot)] == [100, 600]
    assert [r.name for r in search_firewall_rules(snapshot, "ssh")] == ["Allow SSH"]
