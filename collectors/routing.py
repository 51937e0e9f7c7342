"""
collectors/routing.py
─────────────────────
Coletores da tabela de roteamento (domínio routes).

    - LinuxRouteCollector   : `ip route show` + `ip -6 route show`
    - WindowsRouteCollector : `Get-NetRoute` (JSON)

Ordenação: métrica ascendente, estável (rotas de mesma métrica mantêm a
ordem da ferramenta).
"""

from __future__ import annotations

import asyncio
import ipaddress
from typing import Any, Iterable, Optional

from core.base_collector import Collector, load_json_records, powershell_argv
from core.constants import SAMPLE_ROUTES
from core.errors import CollectorError, ParseError
from core.schemas import Domain, DomainRecords, Route

# Tipos de rota do iproute2 que podem preceder o destino
_ROUTE_TYPES = frozenset({
    "unicast", "local", "broadcast", "blackhole", "unreachable",
    "prohibit", "throw", "multicast", "anycast", "nat",
})
# Palavras-chave seguidas de um valor
_KEYED = frozenset({
    "via", "dev", "proto", "scope", "metric", "src", "table", "pref",
    "mtu", "expires", "weight", "realm", "realms", "advmss",
    "hoplimit", "initcwnd", "initrwnd", "rto_min", "congctl", "tos",
})
_UNSPECIFIED = frozenset({"0.0.0.0", "::"})

PS_GET_ROUTES = (
    "Get-NetRoute | Select-Object DestinationPrefix, NextHop, InterfaceAlias, "
    "RouteMetric, InterfaceMetric, Protocol | ConvertTo-Json -Depth 2"
)


# ──────────────────────────────────────────────────────────────────────────────
# Parsing (funções puras)
# ──────────────────────────────────────────────────────────────────────────────

def _normalize_destination(token: str, ipv6: bool) -> str:
    """'default' vira a rota padrão da família; IP sem prefixo vira host route."""
    if token == "default":
        return "::/0" if ipv6 else "0.0.0.0/0"
    if "/" in token:
        return token
    try:
        parsed = ipaddress.ip_address(token)
    except ValueError:
        return token
    return f"{token}/{parsed.max_prefixlen}"


def _parse_route_line(line: str, ipv6: bool = False) -> dict[str, Any]:
    tokens = line.split()
    if tokens and tokens[0] in _ROUTE_TYPES:
        tokens = tokens[1:]
    if not tokens:
        raise ParseError("Rota sem destino.", raw_snippet=line)

    fields: dict[str, Any] = {"destination": _normalize_destination(tokens[0], ipv6)}
    i = 1
    while i < len(tokens):
        key = tokens[i]
        if key in _KEYED and i + 1 < len(tokens):
            fields[key] = tokens[i + 1]
            i += 2
        else:
            i += 1
    return fields


def parse_ip_route(raw: str, ipv6: bool = False) -> list[Route]:
    """
    Parseia `ip route show` ou, com `ipv6=True`, `ip -6 route show`.

    A família vem do comando, não da linha: `default dev wg0` sem gateway
    no IPv6 é `::/0`.

        default via 172.24.160.1 dev eth0 proto kernel
        172.24.160.0/20 dev eth0 proto kernel scope link src 172.24.170.5
        default proto static metric 1024 pref medium
                nexthop via fe80::1 dev eth0 weight 1

    Linhas iniciadas por `nexthop` completam gateway/interface da rota
    anterior quando estes estiverem ausentes.

    Raises:
        ParseError: Destino ausente ou métrica não numérica.
    """
    entries: list[dict[str, Any]] = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        if line.split()[0] == "nexthop":
            if entries:
                hop = _parse_route_line(line.replace("nexthop", "_", 1))
                entries[-1].setdefault("via", hop.get("via"))
                entries[-1].setdefault("dev", hop.get("dev"))
            continue
        entry = _parse_route_line(line, ipv6)
        entry["_raw"] = line
        entries.append(entry)

    routes: list[Route] = []
    for entry in entries:
        metric_text = entry.get("metric", "0")
        if not str(metric_text).isdigit():
            raise ParseError(f"Métrica inválida: '{metric_text}'.", raw_snippet=entry["_raw"])
        routes.append(
            Route(
                destination=entry["destination"],
                gateway=entry.get("via"),
                interface=entry.get("dev") or "",
                metric=int(metric_text),
                protocol=entry.get("proto"),
                scope=entry.get("scope"),
            )
        )
    return sort_routes(routes)


def sort_routes(routes: Iterable[Route]) -> list[Route]:
    return sorted(routes, key=lambda r: r.metric)


def parse_windows_routes(items: Iterable[dict[str, Any]]) -> list[Route]:
    """
    Converte `Get-NetRoute` (JSON). Métrica efetiva = RouteMetric + InterfaceMetric,
    como o próprio Windows calcula na escolha de rota.
    """
    routes: list[Route] = []
    for item in items:
        destination = str(item.get("DestinationPrefix") or "").strip()
        if not destination:
            continue
        next_hop: Optional[str] = str(item.get("NextHop") or "").strip() or None
        if next_hop in _UNSPECIFIED:
            next_hop = None
        metric = int(item.get("RouteMetric") or 0) + int(item.get("InterfaceMetric") or 0)
        protocol = item.get("Protocol")
        routes.append(
            Route(
                destination=destination,
                gateway=next_hop,
                interface=str(item.get("InterfaceAlias") or ""),
                metric=metric,
                protocol=str(protocol) if protocol is not None else None,
            )
        )
    return sort_routes(routes)


def sample_route_records() -> DomainRecords:
    return DomainRecords(
        routes=tuple(Route(**route, synthetic=True) for route in SAMPLE_ROUTES),
        synthetic=True,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Coletores
# ──────────────────────────────────────────────────────────────────────────────

class LinuxRouteCollector(Collector):
    """Tabela principal IPv4 + IPv6. Falha do IPv6 (desabilitado) não é erro."""

    domain = Domain.ROUTES

    async def _collect(self) -> DomainRecords:
        v4_out, v6_out = await asyncio.gather(
            self._run("ip", "route", "show"),
            self._run("ip", "-6", "route", "show"),
            return_exceptions=True,
        )
        if isinstance(v4_out, BaseException):
            raise v4_out

        routes = parse_ip_route(v4_out)
        if isinstance(v6_out, CollectorError):
            self._logger.debug("Rotas IPv6 indisponíveis: %s", v6_out)
        elif isinstance(v6_out, BaseException):
            raise v6_out
        else:
            routes = sort_routes(routes + parse_ip_route(v6_out, ipv6=True))

        self._logger.info("%d rotas coletadas.", len(routes))
        return DomainRecords(routes=tuple(routes))

    def sample_records(self) -> Optional[DomainRecords]:
        return sample_route_records()


class WindowsRouteCollector(Collector):
    domain = Domain.ROUTES

    async def _collect(self) -> DomainRecords:
        raw = await self._run(*powershell_argv(PS_GET_ROUTES))
        routes = parse_windows_routes(load_json_records(raw))
        self._logger.info("%d rotas coletadas.", len(routes))
        return DomainRecords(routes=tuple(routes))

    def sample_records(self) -> Optional[DomainRecords]:
        return sample_route_records()
