"""
collectors/docker.py
────────────────────
Coletor do runtime de containers (domínio container).

Fluxo:
    1. `docker network ls --no-trunc --format "{{json .}}"` → uma linha JSON por rede.
    2. Um único `docker network inspect <ids...>` → IPAM (subnet/gateway) e
       containers anexados.
    3. Cada endpoint de container vira também uma NetworkInterface de origem
       container, nomeada `<container>@<rede>`.

Design Decisions
────────────────
1. Falha do inspect não derruba o domínio: as redes do `ls` são publicadas
   sem IPAM/containers e um WARNING é registrado.
2. Redes de exemplo só com synthetic_fallback=True (daemon parado/ausente).
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from core.base_collector import Collector, load_json_records
from core.constants import SAMPLE_CONTAINER_NETWORKS
from core.errors import CollectorError, ParseError
from core.schemas import (
    ContainerNetwork,
    ContainerSummary,
    Domain,
    DomainRecords,
    InterfaceOrigin,
    IPAddress,
    NetworkInterface,
)


# ──────────────────────────────────────────────────────────────────────────────
# Parsing (funções puras)
# ──────────────────────────────────────────────────────────────────────────────

def parse_network_ls(raw: str) -> list[dict[str, Any]]:
    """
    Uma linha JSON por rede (formato `{{json .}}`).

    Raises:
        ParseError: Linha que não é objeto JSON.
    """
    networks: list[dict[str, Any]] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ParseError(f"JSON inválido do docker: {exc.msg}", raw_snippet=line) from exc
        if not isinstance(item, dict):
            raise ParseError("Linha do docker não é um objeto.", raw_snippet=line)
        networks.append(item)
    return networks


def _strip_prefix(value: Any) -> Optional[str]:
    # '172.17.0.2/16' → '172.17.0.2'; '' → None
    text = str(value or "").strip()
    return text.split("/", 1)[0] or None


def _containers_from(inspect_item: dict[str, Any]) -> tuple[ContainerSummary, ...]:
    containers = inspect_item.get("Containers") or {}
    summaries = []
    for container_id, info in containers.items():
        info = info or {}
        summaries.append(
            ContainerSummary(
                container_id=container_id,
                name=info.get("Name") or container_id[:12],
                ipv4_address=_strip_prefix(info.get("IPv4Address")),
                ipv6_address=_strip_prefix(info.get("IPv6Address")),
                mac_address=info.get("MacAddress") or None,
            )
        )
    return tuple(summaries)


def build_container_networks(
    ls_items: Iterable[dict[str, Any]],
    inspect_items: Iterable[dict[str, Any]] = (),
) -> list[ContainerNetwork]:
    """Junta a listagem (`ls`) com o detalhe (`inspect`), na ordem do `ls`."""
    by_id = {str(item.get("Id", "")): item for item in inspect_items}

    networks: list[ContainerNetwork] = []
    for item in ls_items:
        network_id = str(item.get("ID") or item.get("Id") or "")
        name = str(item.get("Name") or "")
        if not network_id or not name:
            continue
        detail = by_id.get(network_id, {})
        ipam = ((detail.get("IPAM") or {}).get("Config") or [{}])
        first = ipam[0] if ipam else {}
        networks.append(
            ContainerNetwork(
                network_id=network_id,
                name=name,
                driver=item.get("Driver") or "unknown",
                scope=item.get("Scope") or "unknown",
                subnet=first.get("Subnet") or None,
                gateway=first.get("Gateway") or None,
                containers=_containers_from(detail),
            )
        )
    return networks


def container_interfaces(networks: Iterable[ContainerNetwork]) -> list[NetworkInterface]:
    """Uma interface `<container>@<rede>` por endpoint anexado."""
    interfaces: list[NetworkInterface] = []
    for network in networks:
        for container in network.containers:
            addresses = [
                IPAddress.model_validate(address)
                for address in (container.ipv4_address, container.ipv6_address)
                if address
            ]
            interfaces.append(
                NetworkInterface(
                    name=f"{container.name}@{network.name}",
                    origin=InterfaceOrigin.CONTAINER,
                    addresses=tuple(addresses),
                    mac_address=container.mac_address,
                    is_up=True,
                    synthetic=network.synthetic,
                )
            )
    return interfaces


def sample_container_records() -> DomainRecords:
    return DomainRecords(
        container_networks=tuple(
            ContainerNetwork(**network, synthetic=True)
            for network in SAMPLE_CONTAINER_NETWORKS
        ),
        synthetic=True,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Coletor
# ──────────────────────────────────────────────────────────────────────────────

class DockerNetworkCollector(Collector):
    """Redes Docker via CLI (`docker` no PATH, daemon acessível)."""

    domain = Domain.CONTAINER

    async def _collect(self) -> DomainRecords:
        ls_items = parse_network_ls(
            await self._run("docker", "network", "ls", "--no-trunc", "--format", "{{json .}}")
        )

        inspect_items: list[dict[str, Any]] = []
        ids = [str(item.get("ID")) for item in ls_items if item.get("ID")]
        if ids:
            try:
                inspect_items = load_json_records(
                    await self._run("docker", "network", "inspect", *ids)
                )
            except CollectorError as exc:
                self._logger.warning(
                    "docker network inspect falhou [%s]: %s", exc.kind.value, exc
                )

        networks = build_container_networks(ls_items, inspect_items)
        interfaces = container_interfaces(networks)
        self._logger.info(
            "%d redes Docker e %d endpoints coletados.", len(networks), len(interfaces)
        )
        return DomainRecords(
            container_networks=tuple(networks),
            interfaces=tuple(interfaces),
        )

    def sample_records(self) -> Optional[DomainRecords]:
        return sample_container_records()
