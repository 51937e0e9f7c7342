"""
collectors/registry.py
Seleção do conjunto FIXO de coletores por plataforma.

A escolha acontece uma única vez, na inicialização, a partir do enum
Platform; não há inspeção de tipos em tempo de execução.
"""

from __future__ import annotations

from typing import Callable

from collectors.docker import DockerNetworkCollector
from collectors.firewall import LinuxFirewallCollector, WindowsFirewallCollector
from collectors.interfaces import (
    LinuxInterfaceCollector,
    WindowsInterfaceCollector,
    WslGuestInterfaceCollector,
)
from collectors.ports import LinuxPortCollector, WindowsPortCollector
from collectors.routing import LinuxRouteCollector, WindowsRouteCollector
from core.base_collector import Collector
from core.config import Platform
from core.schemas import InterfaceOrigin

CollectorFactory = Callable[..., Collector]

# Ordem = ordem dos domínios no Snapshot
_PLATFORM_COLLECTORS: dict[Platform, tuple[CollectorFactory, ...]] = {
    Platform.LINUX: (
        LinuxInterfaceCollector,
        DockerNetworkCollector,
        LinuxPortCollector,
        LinuxFirewallCollector,
        LinuxRouteCollector,
    ),
    Platform.WSL: (
        WindowsInterfaceCollector,
        lambda **kw: LinuxInterfaceCollector(origin=InterfaceOrigin.GUEST, **kw),
        DockerNetworkCollector,
        LinuxPortCollector,
        LinuxFirewallCollector,
        LinuxRouteCollector,
    ),
    Platform.WINDOWS: (
        WindowsInterfaceCollector,
        WslGuestInterfaceCollector,
        DockerNetworkCollector,
        WindowsPortCollector,
        WindowsFirewallCollector,
        WindowsRouteCollector,
    ),
}


def build_collectors(
    platform: Platform,
    timeout: float,
    synthetic_fallback: bool = False,
) -> list[Collector]:
    """Instancia os coletores da plataforma com timeout e política de fallback."""
    return [
        factory(timeout=timeout, synthetic_fallback=synthetic_fallback)
        for factory in _PLATFORM_COLLECTORS[platform]
    ]
