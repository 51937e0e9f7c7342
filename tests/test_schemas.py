import pytest
from pydantic import ValidationError

from core.schemas import (
    Domain,
    DomainRecords,
    InterfaceOrigin,
    IPAddress,
    IPVersion,
    NetworkInterface,
    PortBinding,
    ProbeKind,
    ProbeRequest,
    ProbeState,
    Route,
    Snapshot,
    Transport,
)

from conftest import make_iface


def test_ip_address_from_cidr_string_derives_version():
    v4 = IPAddress.model_validate("172.20.11.89/20")
    v6 = IPAddress.model_validate("fe80::215:5dff:fef9:e225/64")

    assert (v4.address, v4.prefix_len, v4.version) == ("172.20.11.89", 20, IPVersion.V4)
    assert v6.version == IPVersion.V6
    assert v6.is_link_local
    assert str(v4) == "172.20.11.89/20"


def test_ip_address_rejects_garbage():
    with pytest.raises(ValidationError):
        IPAddress.model_validate("not-an-ip/24")


@pytest.mark.parametrize(
    "raw",
    ["00:15:5d:f9:e2:25", "00-15-5D-F9-E2-25", "00155DF9E225"],
)
def test_mac_address_is_normalized(raw):
    iface = NetworkInterface(name="eth0", origin=InterfaceOrigin.HOST, mac_address=raw)
    assert iface.mac_address == "00:15:5D:F9:E2:25"


def test_invalid_mac_address_is_rejected():
    with pytest.raises(ValidationError):
        NetworkInterface(name="eth0", origin=InterfaceOrigin.HOST, mac_address="zz:zz")


def test_port_binding_validates_range_and_normalizes_protocol():
    binding = PortBinding(protocol="tcp6", port=443)
    assert binding.protocol == Transport.TCP
    assert binding.process_name == "N/A"

    with pytest.raises(ValidationError):
        PortBinding(protocol="TCP", port=70000)


def test_default_route_is_normalized_by_gateway_family():
    assert Route(destination="default", gateway="10.0.0.1").destination == "0.0.0.0/0"
    assert Route(destination="default", gateway="fe80::1").destination == "::/0"


def test_snapshot_is_frozen_and_concatenates_domains():
    host = DomainRecords(interfaces=(make_iface("eth0"),))
    guest = DomainRecords(interfaces=(make_iface("eth0", origin=InterfaceOrigin.GUEST),))
    snapshot = Snapshot(records={Domain.GUEST: guest, Domain.HOST: host})

    assert [i.origin for i in snapshot.interfaces] == [InterfaceOrigin.HOST, InterfaceOrigin.GUEST]
    assert snapshot.interface("eth0", InterfaceOrigin.GUEST) is not None
    assert snapshot.interface("eth9", InterfaceOrigin.HOST) is None
    with pytest.raises(ValidationError):
        snapshot.snapshot_id = 99


def test_empty_snapshot_has_generation_zero():
    snapshot = Snapshot.empty()
    assert snapshot.snapshot_id == 0
    assert snapshot.interfaces == ()
    assert not snapshot.is_degraded


def test_probe_request_validation():
    request = ProbeRequest(
        kind="http",
        target="example.com",
        interface_name="eth0",
        method="post",
        headers={"X-Test": "1"},
    )
    assert request.kind == ProbeKind.HTTP
    assert request.method == "POST"
    assert request.headers == [("X-Test", "1")]

    with pytest.raises(ValidationError):
        ProbeRequest(kind="http", target="x", interface_name="eth0", method="BREW")
    with pytest.raises(ValidationError):
        ProbeRequest(kind="reachability", target="x", interface_name="eth0", count=0)
    with pytest.raises(ValidationError):
        ProbeRequest(kind="reachability", target="x", interface_name="eth0", timeout=0)


def test_probe_state_terminal_flags():
    assert not ProbeState.IDLE.is_terminal
    assert not ProbeState.IN_FLIGHT.is_terminal
    assert ProbeState.COMPLETED.is_terminal
    assert ProbeState.TIMED_OUT.is_terminal
    assert ProbeState.FAILED.is_terminal
