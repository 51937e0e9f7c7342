import asyncio
from typing import Callable, Optional, Sequence, Union

import pytest

from api import create_app
from api.config import TestingConfig
from core.aggregator import Aggregator
from core.base_collector import Collector
from core.errors import CollectorError
from core.schemas import (
    Domain,
    DomainRecords,
    InterfaceOrigin,
    IPAddress,
    NetworkInterface,
    PortBinding,
    PortDirection,
    Snapshot,
)
from core.services.probe_dispatcher import ProbeDispatcher
from core.services.process_guard import ProcessGuard
from core.services.state_service import NetworkStateService

Outcome = Union[DomainRecords, CollectorError, Callable[[], DomainRecords]]


class FakeCollector(Collector):
    """
    Collector stub driven by a script of outcomes.

    Each collect() consumes the next outcome (the last one repeats):
    DomainRecords are returned, CollectorError instances are raised.
    An optional `delay` (or an asyncio.Event in `gate`) holds the
    collection open to exercise overlapping refreshes.
    """

    def __init__(
        self,
        domain: Domain,
        outcomes: Sequence[Outcome],
        delay: float = 0.0,
        sample: Optional[DomainRecords] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.domain = domain
        self.outcomes = list(outcomes)
        self.delay = delay
        self.sample = sample
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def _collect(self) -> DomainRecords:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(outcome, CollectorError):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome

    def sample_records(self) -> Optional[DomainRecords]:
        return self.sample


class GuardDelegateStub:
    def __init__(self):
        self.calls = []

    def __call__(self, pid: int) -> None:
        self.calls.append(pid)


def make_iface(
    name: str = "eth0",
    origin: InterfaceOrigin = InterfaceOrigin.HOST,
    addresses: Sequence[str] = ("192.168.1.10/24",),
    is_up: bool = True,
    is_loopback: bool = False,
) -> NetworkInterface:
    return NetworkInterface(
        name=name,
        origin=origin,
        addresses=tuple(IPAddress.model_validate(a) for a in addresses),
        is_up=is_up,
        is_loopback=is_loopback,
    )


def make_port(
    port: int,
    process_name: str = "nginx",
    pid: Optional[int] = 100,
    protocol: str = "TCP",
    local_address: str = "0.0.0.0",
    direction: PortDirection = PortDirection.LISTENING,
) -> PortBinding:
    return PortBinding(
        pid=pid,
        process_name=process_name,
        protocol=protocol,
        port=port,
        direction=direction,
        local_address=local_address,
        network=f"{local_address}:{port}",
        state="LISTEN",
    )


@pytest.fixture()
def host_records() -> DomainRecords:
    return DomainRecords(
        interfaces=(
            make_iface("eth0", addresses=("192.168.1.10/24", "fe80::1/64")),
            make_iface("lo", addresses=("127.0.0.1/8",), is_loopback=True),
            make_iface("eth1", addresses=(), is_up=False),
        )
    )


@pytest.fixture()
def port_records() -> DomainRecords:
    return DomainRecords(
        ports=(
            make_port(80, "nginx", 100),
            make_port(8080, "java", 200, local_address="192.168.1.10"),
            make_port(53, "systemd-resolved", 300, protocol="UDP", local_address="127.0.0.53"),
            make_port(443, "nginx", 100),
            make_port(22, "sshd", None),
        )
    )


@pytest.fixture()
def sample_snapshot(host_records, port_records) -> Snapshot:
    return Snapshot(
        snapshot_id=1,
        records={Domain.HOST: host_records, Domain.PORTS: port_records},
    )


@pytest.fixture()
def fake_collectors(host_records, port_records):
    return [
        FakeCollector(Domain.HOST, [host_records]),
        FakeCollector(Domain.PORTS, [port_records]),
    ]


@pytest.fixture()
def guard_delegate():
    return GuardDelegateStub()


@pytest.fixture()
def service(fake_collectors, guard_delegate):
    aggregator = Aggregator(fake_collectors)
    return NetworkStateService(
        aggregator,
        dispatcher=ProbeDispatcher(aggregator.current),
        guard=ProcessGuard(delegate=guard_delegate),
    )


@pytest.fixture()
def client(service):
    app = create_app(config_class=TestingConfig, service=service)
    return app.test_client()
