"""
core/query.py
─────────────
Consultas puras sobre um Snapshot.

Nenhuma função aqui altera o Snapshot, acessa a rede ou guarda estado:
mesma entrada → mesma saída, na ordem de entrada (salvo `sort_by`).
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.constants import WILDCARD_ADDRESSES
from core.schemas import (
    FirewallRule,
    NetworkInterface,
    PortBinding,
    PortDirection,
    Route,
    Snapshot,
    Transport,
)


class PortMatch(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"


class SortKey(str, Enum):
    PORT = "port"
    PID = "pid"
    PROCESS_NAME = "process_name"
    PROTOCOL = "protocol"


class FilterCriteria(BaseModel):
    """
    Critérios de filtro da lista de portas. Campos None não filtram.

    >>> FilterCriteria(port="80", port_match="prefix").port_match
    <PortMatch.PREFIX: 'prefix'>
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    text: Optional[str] = Field(
        default=None,
        description="Substring (sem caixa) em processo, rótulo de rede, protocolo ou PID.",
    )
    process_name: Optional[str] = Field(default=None)
    port: Optional[str] = Field(default=None, description="Texto decimal da porta.")
    port_match: PortMatch = Field(default=PortMatch.EXACT)
    pid: Optional[int] = Field(default=None, ge=0)
    protocol: Optional[Transport] = Field(default=None)
    direction: Optional[PortDirection] = Field(default=None)
    sort_by: Optional[SortKey] = Field(default=None)
    descending: bool = Field(default=False)


# ─── Portas ──────────────────────────────────────────────────────────────────


def _matches(binding: PortBinding, criteria: FilterCriteria) -> bool:
    if criteria.text:
        needle = criteria.text.lower()
        haystack = (
            binding.process_name,
            binding.network,
            binding.protocol.value,
            "" if binding.pid is None else str(binding.pid),
        )
        if not any(needle in value.lower() for value in haystack):
            return False

    if criteria.process_name and criteria.process_name.lower() not in binding.process_name.lower():
        return False

    if criteria.port:
        port_text = str(binding.port)
        if criteria.port_match == PortMatch.PREFIX:
            if not port_text.startswith(criteria.port):
                return False
        elif port_text != criteria.port.lstrip("0") and port_text != criteria.port:
            return False

    if criteria.pid is not None and binding.pid != criteria.pid:
        return False
    if criteria.protocol is not None and binding.protocol != criteria.protocol:
        return False
    if criteria.direction is not None and binding.direction != criteria.direction:
        return False
    return True


def _sort_value(binding: PortBinding, key: SortKey) -> tuple:
    if key == SortKey.PORT:
        return (binding.port,)
    if key == SortKey.PID:
        # PID desconhecido vai para o fim na ordem ascendente
        return (binding.pid is None, binding.pid or 0)
    if key == SortKey.PROCESS_NAME:
        return (binding.process_name.lower(),)
    return (binding.protocol.value,)


def filter_ports(snapshot: Snapshot, criteria: FilterCriteria) -> tuple[PortBinding, ...]:
    """Filtra (e opcionalmente ordena, de forma estável) os bindings do snapshot."""
    selected = [b for b in snapshot.ports if _matches(b, criteria)]
    if criteria.sort_by is not None:
        selected.sort(
            key=lambda b: _sort_value(b, criteria.sort_by),
            reverse=criteria.descending,
        )
    return tuple(selected)


def ports_for_interface(
    snapshot: Snapshot, interface: NetworkInterface
) -> tuple[PortBinding, ...]:
    """Bindings em um endereço da interface ou em endereço curinga."""
    owned = {a.address for a in interface.addresses}
    return tuple(
        b for b in snapshot.ports
        if b.local_address in owned or b.local_address in WILDCARD_ADDRESSES
    )


# ─── Interfaces / rotas / firewall ───────────────────────────────────────────


def available_interfaces(snapshot: Snapshot) -> tuple[NetworkInterface, ...]:
    """Interfaces ativas e não-loopback (candidatas a origem de sondas)."""
    return tuple(i for i in snapshot.interfaces if i.is_up and not i.is_loopback)


def search_interfaces(
    snapshot: Snapshot, text: Optional[str] = None
) -> tuple[NetworkInterface, ...]:
    """Busca por nome, MAC ou endereço (substring, sem caixa)."""
    if not text:
        return snapshot.interfaces
    needle = text.strip().lower()

    def _hit(iface: NetworkInterface) -> bool:
        values: Iterable[str] = (
            iface.name,
            iface.mac_address or "",
            *(str(a) for a in iface.addresses),
        )
        return any(needle in v.lower() for v in values)

    return tuple(i for i in snapshot.interfaces if _hit(i))


def sorted_routes(snapshot: Snapshot) -> tuple[Route, ...]:
    """Rotas por métrica ascendente (estável)."""
    return tuple(sorted(snapshot.routes, key=lambda r: r.metric))


def search_firewall_rules(
    snapshot: Snapshot, text: Optional[str] = None
) -> tuple[FirewallRule, ...]:
    if not text:
        return snapshot.firewall_rules
    needle = text.strip().lower()
    return tuple(
        r for r in snapshot.firewall_rules
        if any(
            needle in v.lower()
            for v in (r.name, r.protocol, r.local_port, r.remote_port,
                      r.local_address, r.remote_address, r.chain or "")
        )
    )
