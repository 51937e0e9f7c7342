"""
collectors/interfaces.py
────────────────────────
Coletores de interfaces de rede (domínios host e guest).

Variantes:
    - LinuxInterfaceCollector    : `ip -br addr show` + `ip -br link show`
    - WslGuestInterfaceCollector : mesmos comandos via `wsl.exe -e` (origem guest)
    - WindowsInterfaceCollector  : `Get-NetIPAddress` + `Get-NetAdapter` (JSON)

Design Decisions:
    - As duas chamadas de cada variante rodam em paralelo (asyncio.gather).
    - A listagem de links só enriquece (MAC); se falhar, a coleta segue sem MAC.
      Já a listagem de endereços é obrigatória: falha → CollectorError.
    - As duas saídas `ip -br` passam por templates TTP (templates/ip_brief_*.ttp);
      a ordem publicada é a das linhas da ferramenta.
    - _parse_* são funções puras, testáveis offline com saídas de fixture.
"""

from __future__ import annotations

import asyncio
import ipaddress
import re
from typing import Any, Iterable, Iterator, Optional

from ttp import ttp

from core.base_collector import Collector, load_json_records, powershell_argv
from core.constants import PS_ADDRESS_FAMILY_V4, PS_ADDRESS_FAMILY_V6
from core.errors import CollectorError, ParseError
from core.schemas import Domain, DomainRecords, InterfaceOrigin, IPAddress, NetworkInterface
from templates import TEMPLATES_DIR

_RE_MAC = re.compile(r"^[0-9A-Fa-f]{2}([:-][0-9A-Fa-f]{2}){5}$")

# Estados do `ip -br` considerados ativos. UNKNOWN = operstate não reportado
# pelo driver (lo, tun, wireguard), que na prática estão ativas.
_UP_STATES = frozenset({"UP", "UNKNOWN"})

PS_GET_IP_ADDRESSES = (
    "Get-NetIPAddress | Select-Object InterfaceAlias, IPAddress, AddressFamily, "
    "PrefixLength | ConvertTo-Json -Depth 2"
)
PS_GET_ADAPTERS = (
    "Get-NetAdapter | Select-Object Name, InterfaceDescription, ifIndex, Status, "
    "MacAddress | ConvertTo-Json -Depth 2"
)


# ──────────────────────────────────────────────────────────────────────────────
# Parsing (funções puras)
# ──────────────────────────────────────────────────────────────────────────────

def _flatten_ttp(block: Any, group_name: str) -> Iterator[dict[str, Any]]:
    """Achata o resultado do TTP (list/dict aninhados) em itens do grupo."""
    if isinstance(block, list):
        for inner in block:
            yield from _flatten_ttp(inner, group_name)
    elif isinstance(block, dict):
        if group_name in block:
            yield from _flatten_ttp(block[group_name], group_name)
        else:
            yield block


def parse_ttp(raw: str, template_name: str, group_name: str) -> list[dict[str, Any]]:
    """
    Executa o TTP sobre `raw` usando o template `template_name`.

    As linhas são aparadas antes do parsing: o `ip -br` preenche colunas com
    espaços à direita, que não fazem parte do formato.

    Returns:
        Lista de dicts do grupo `group_name` ([] se nada casar).
    """
    template_text = (TEMPLATES_DIR / template_name).read_text(encoding="utf-8")
    data = "\n".join(line.strip() for line in raw.splitlines() if line.strip()) + "\n"
    parser = ttp(data=data, template=template_text)
    parser.parse()
    results = parser.result(structure="flat_list")
    return list(_flatten_ttp(results, group_name))


def _base_name(name: str) -> str:
    # 'veth12ab@if5' → 'veth12ab' (o sufixo é o ifindex do par, não o nome)
    return name.split("@", 1)[0]


def parse_brief_links(raw: str) -> dict[str, str]:
    """
    Mapeia nome → MAC a partir de `ip -br link show`.

    Formato: "eth0 UP 00:15:5d:f9:e2:25 <BROADCAST,MULTICAST,UP,LOWER_UP>"
    Linhas sem MAC de 6 octetos (túneis, wireguard) são ignoradas.
    """
    mac_map: dict[str, str] = {}
    for item in parse_ttp(raw, "ip_brief_link.ttp", "links"):
        name = item.get("name")
        mac = str(item.get("mac_address", ""))
        if name and _RE_MAC.match(mac):
            mac_map[_base_name(str(name))] = mac
    return mac_map


def parse_brief_addresses(
    raw: str,
    origin: InterfaceOrigin,
    mac_map: Optional[dict[str, str]] = None,
) -> list[NetworkInterface]:
    """
    Parseia `ip -br addr show` — uma interface por linha.

    Formato: "eth0 UP 172.20.11.89/20 fe80::215:5dff:fef9:e225/64"

    Raises:
        ParseError: Linha que o template não reconhece ou endereço inválido.
    """
    mac_map = mac_map or {}
    rows = {
        str(item["name"]): item
        for item in parse_ttp(raw, "ip_brief_addr.ttp", "interfaces")
        if item.get("name")
    }

    # Ordem da ferramenta; linha que o template não reconheceu é erro de formato
    interfaces: list[NetworkInterface] = []
    for line in raw.splitlines():
        parts = line.split()
        if not parts:
            continue
        row = rows.get(parts[0])
        if row is None:
            raise ParseError("Linha de 'ip -br addr' sem coluna de estado.", raw_snippet=line)

        name = _base_name(parts[0])
        try:
            addresses = [
                IPAddress.model_validate(token)
                for token in str(row.get("addresses", "")).split()
            ]
        except ValueError as exc:
            raise ParseError(f"Endereço inválido em '{name}': {exc}", raw_snippet=line) from exc

        is_loopback = name == "lo" or any(
            ipaddress.ip_address(a.address).is_loopback for a in addresses
        )
        interfaces.append(
            NetworkInterface(
                name=name,
                origin=origin,
                addresses=tuple(addresses),
                mac_address=mac_map.get(name),
                is_up=str(row.get("state", "")).upper() in _UP_STATES,
                is_loopback=is_loopback,
            )
        )
    return interfaces


def _ps_family_is_v6(value: Any) -> Optional[bool]:
    """AddressFamily do PowerShell: 2/'IPv4' → False, 23/'IPv6' → True."""
    if value in (PS_ADDRESS_FAMILY_V4, "IPv4", str(PS_ADDRESS_FAMILY_V4)):
        return False
    if value in (PS_ADDRESS_FAMILY_V6, "IPv6", str(PS_ADDRESS_FAMILY_V6)):
        return True
    return None


def parse_windows_interfaces(
    ip_items: Iterable[dict[str, Any]],
    adapter_items: Iterable[dict[str, Any]],
) -> list[NetworkInterface]:
    """
    Junta `Get-NetIPAddress` (endereços) com `Get-NetAdapter` (MAC/estado).

    Interfaces aparecem na ordem da primeira ocorrência; adaptadores sem IP
    também são listados. Adaptador desconhecido → considerado ativo.
    """
    macs: dict[str, str] = {}
    status: dict[str, bool] = {}
    order: list[str] = []

    for adapter in adapter_items:
        name = str(adapter.get("Name") or "").strip()
        if not name:
            continue
        mac = adapter.get("MacAddress")
        if mac and _RE_MAC.match(str(mac)):
            macs[name] = str(mac)
        status[name] = str(adapter.get("Status", "")).lower() == "up"

    addresses: dict[str, list[IPAddress]] = {}
    for item in ip_items:
        alias = str(item.get("InterfaceAlias") or "").strip()
        ip_raw = str(item.get("IPAddress") or "").strip()
        is_v6 = _ps_family_is_v6(item.get("AddressFamily"))
        if not alias or not ip_raw or is_v6 is None:
            continue
        # Windows anexa a zona em link-local IPv6 ('fe80::1%12')
        ip_raw = ip_raw.split("%", 1)[0]
        try:
            address = IPAddress.model_validate(
                {"address": ip_raw, "prefix_len": item.get("PrefixLength")}
            )
        except ValueError as exc:
            raise ParseError(f"Endereço inválido em '{alias}': {exc}", raw_snippet=ip_raw) from exc
        if alias not in addresses:
            addresses[alias] = []
            order.append(alias)
        addresses[alias].append(address)

    for name in status:
        if name not in addresses:
            order.append(name)

    interfaces: list[NetworkInterface] = []
    for name in order:
        addrs = tuple(addresses.get(name, ()))
        interfaces.append(
            NetworkInterface(
                name=name,
                origin=InterfaceOrigin.HOST,
                addresses=addrs,
                mac_address=macs.get(name),
                is_up=status.get(name, True),
                is_loopback="loopback" in name.lower()
                or any(ipaddress.ip_address(a.address).is_loopback for a in addrs),
            )
        )
    return interfaces


# ──────────────────────────────────────────────────────────────────────────────
# Coletores
# ──────────────────────────────────────────────────────────────────────────────

class LinuxInterfaceCollector(Collector):
    """
    Interfaces de um Linux via iproute2 (formato brief).

    Parameters
    ----------
    origin : InterfaceOrigin
        HOST no Linux nativo; GUEST quando o Linux é a camada virtualizada (WSL).
    command_prefix : tuple[str, ...]
        Prefixo para executar `ip` em outro ambiente (ex: ("wsl.exe", "-e")).
    """

    def __init__(
        self,
        origin: InterfaceOrigin = InterfaceOrigin.HOST,
        command_prefix: tuple[str, ...] = (),
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.origin = origin
        self.domain = Domain(origin.value)
        self.command_prefix = command_prefix

    async def _collect(self) -> DomainRecords:
        addr_task = self._run(*self.command_prefix, "ip", "-br", "addr", "show")
        link_task = self._run(*self.command_prefix, "ip", "-br", "link", "show")
        addr_out, link_out = await asyncio.gather(
            addr_task, link_task, return_exceptions=True
        )

        if isinstance(addr_out, BaseException):
            raise addr_out

        mac_map: dict[str, str] = {}
        if isinstance(link_out, CollectorError):
            self._logger.warning("Sem MACs para '%s': %s", self.domain.value, link_out)
        elif isinstance(link_out, BaseException):
            raise link_out
        else:
            mac_map = parse_brief_links(link_out)

        interfaces = parse_brief_addresses(addr_out, self.origin, mac_map)
        self._logger.info(
            "%d interfaces coletadas (%s).", len(interfaces), self.origin.value
        )
        return DomainRecords(interfaces=tuple(interfaces))


class WslGuestInterfaceCollector(LinuxInterfaceCollector):
    """Interfaces da distribuição WSL, vistas a partir do Windows."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            origin=InterfaceOrigin.GUEST,
            command_prefix=("wsl.exe", "-e"),
            **kwargs,
        )


class WindowsInterfaceCollector(Collector):
    """Interfaces do Windows via PowerShell (nativo ou interop do WSL)."""

    domain = Domain.HOST

    async def _collect(self) -> DomainRecords:
        ip_out, adapter_out = await asyncio.gather(
            self._run(*powershell_argv(PS_GET_IP_ADDRESSES)),
            self._run(*powershell_argv(PS_GET_ADAPTERS)),
            return_exceptions=True,
        )
        if isinstance(ip_out, BaseException):
            raise ip_out

        adapters: list[dict[str, Any]] = []
        if isinstance(adapter_out, CollectorError):
            self._logger.warning("Get-NetAdapter indisponível: %s", adapter_out)
        elif isinstance(adapter_out, BaseException):
            raise adapter_out
        else:
            adapters = load_json_records(adapter_out)

        interfaces = parse_windows_interfaces(load_json_records(ip_out), adapters)
        self._logger.info("%d interfaces do Windows coletadas.", len(interfaces))
        return DomainRecords(interfaces=tuple(interfaces))
