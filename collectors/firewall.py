"""
collectors/firewall.py
Coletores de regras de firewall (domínio firewall).

    - LinuxFirewallCollector   : `iptables -S` (políticas + regras por chain)
    - WindowsFirewallCollector : `Get-NetFirewallRule` + filtros de porta/endereço
"""

from __future__ import annotations

import shlex
from typing import Any, Iterable, Optional

from core.base_collector import Collector, load_json_records, powershell_argv
from core.constants import SAMPLE_FIREWALL_RULES
from core.errors import ParseError
from core.schemas import (
    Domain,
    DomainRecords,
    FirewallRule,
    RuleAction,
    RuleDirection,
)

_ALLOW_TARGETS = frozenset({"ACCEPT"})
_BLOCK_TARGETS = frozenset({"DROP", "REJECT"})

# Opções do iptables que recebem um valor e nos interessam
_OPTION_FIELDS = {
    "-p": "protocol", "--protocol": "protocol",
    "-s": "source", "--source": "source",
    "-d": "destination", "--destination": "destination",
    "--sport": "sport", "--source-port": "sport",
    "--dport": "dport", "--destination-port": "dport",
    "--dports": "dport", "--sports": "sport",
    "-j": "target", "--jump": "target",
    "-i": "in_iface", "-o": "out_iface",
    "--comment": "comment",
}

PS_GET_FIREWALL_RULES = (
    "Get-NetFirewallRule | ForEach-Object { "
    "$port = $_ | Get-NetFirewallPortFilter; "
    "$addr = $_ | Get-NetFirewallAddressFilter; "
    "[PSCustomObject]@{ "
    "Name = $_.DisplayName; "
    "Enabled = [string]$_.Enabled; "
    "Direction = [string]$_.Direction; "
    "Action = [string]$_.Action; "
    "Protocol = [string]$port.Protocol; "
    "LocalPort = [string]$port.LocalPort; "
    "RemotePort = [string]$port.RemotePort; "
    "LocalAddress = [string]$addr.LocalAddress; "
    "RemoteAddress = [string]$addr.RemoteAddress } } | "
    "ConvertTo-Json -Depth 2"
)


# ──────────────────────────────────────────────────────────────────────────────
# Parsing (funções puras)
# ──────────────────────────────────────────────────────────────────────────────

def _action_for(target: Optional[str]) -> Optional[RuleAction]:
    if target in _ALLOW_TARGETS:
        return RuleAction.ALLOW
    if target in _BLOCK_TARGETS:
        return RuleAction.BLOCK
    return None


def _direction_for(chain: str) -> RuleDirection:
    return RuleDirection.OUTBOUND if chain.upper() == "OUTPUT" else RuleDirection.INBOUND


def _parse_rule_options(tokens: list[str]) -> dict[str, str]:
    """Extrai opções de uma regra `-A`; '!' nega o valor seguinte."""
    options: dict[str, str] = {}
    negate = False
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token == "!":
            negate = True
            i += 1
            continue
        field = _OPTION_FIELDS.get(token)
        if field is not None and i + 1 < len(tokens):
            value = tokens[i + 1]
            options[field] = f"!{value}" if negate else value
            i += 2
        else:
            i += 1
        negate = False
    return options


def parse_iptables_rules(raw: str) -> list[FirewallRule]:
    """
    Parseia `iptables -S`.

        -P INPUT DROP                                → regra 'policy INPUT'
        -A INPUT -p tcp -m tcp --dport 22 -j ACCEPT  → regra 'INPUT #1'

    Alvos que não são ACCEPT/DROP/REJECT (chains de usuário, LOG, RETURN)
    não viram regras. `-N` (criação de chain) é ignorado.

    Raises:
        ParseError: Aspas desbalanceadas ou `-A`/`-P` sem chain.
    """
    rules: list[FirewallRule] = []
    counters: dict[str, int] = {}

    for line in raw.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            tokens = shlex.split(line)
        except ValueError as exc:
            raise ParseError(f"Linha do iptables inválida: {exc}", raw_snippet=line) from exc

        if tokens[0] not in ("-P", "-A"):
            continue
        if len(tokens) < 2:
            raise ParseError("Regra do iptables sem chain.", raw_snippet=line)
        chain = tokens[1]
        direction = _direction_for(chain)

        if tokens[0] == "-P":
            action = _action_for(tokens[2] if len(tokens) > 2 else None)
            if action is None:
                continue
            rules.append(
                FirewallRule(
                    name=f"policy {chain}",
                    direction=direction,
                    action=action,
                    chain=chain,
                    raw=line,
                )
            )
            continue

        counters[chain] = counters.get(chain, 0) + 1
        options = _parse_rule_options(tokens[2:])
        action = _action_for(options.get("target"))
        if action is None:
            continue

        source = options.get("source", "any")
        destination = options.get("destination", "any")
        sport = options.get("sport", "any")
        dport = options.get("dport", "any")
        if direction == RuleDirection.INBOUND:
            local_address, remote_address = destination, source
            local_port, remote_port = dport, sport
        else:
            local_address, remote_address = source, destination
            local_port, remote_port = sport, dport

        rules.append(
            FirewallRule(
                name=options.get("comment") or f"{chain} #{counters[chain]}",
                direction=direction,
                action=action,
                protocol=options.get("protocol", "any"),
                local_address=local_address,
                remote_address=remote_address,
                local_port=local_port,
                remote_port=remote_port,
                chain=chain,
                raw=line,
            )
        )
    return rules


def _ps_text(value: Any, default: str = "any") -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


def parse_windows_firewall_rules(items: Iterable[dict[str, Any]]) -> list[FirewallRule]:
    """
    Converte a saída JSON de `Get-NetFirewallRule` enriquecida com filtros.

    Enabled/Direction/Action chegam como texto ('True', 'Inbound', 'Allow')
    ou como números do enum, dependendo da versão do PowerShell.
    """
    rules: list[FirewallRule] = []
    for item in items:
        name = _ps_text(item.get("Name") or item.get("DisplayName"), "")
        if not name:
            continue
        enabled = _ps_text(item.get("Enabled"), "true").lower() in ("true", "1")
        direction_raw = _ps_text(item.get("Direction"), "inbound").lower()
        direction = (
            RuleDirection.OUTBOUND
            if direction_raw in ("outbound", "2")
            else RuleDirection.INBOUND
        )
        action_raw = _ps_text(item.get("Action"), "allow").lower()
        action = RuleAction.BLOCK if action_raw in ("block", "4") else RuleAction.ALLOW
        rules.append(
            FirewallRule(
                name=name,
                enabled=enabled,
                direction=direction,
                action=action,
                protocol=_ps_text(item.get("Protocol")),
                local_address=_ps_text(item.get("LocalAddress")),
                remote_address=_ps_text(item.get("RemoteAddress")),
                local_port=_ps_text(item.get("LocalPort")),
                remote_port=_ps_text(item.get("RemotePort")),
            )
        )
    return rules


def sample_firewall_records() -> DomainRecords:
    return DomainRecords(
        firewall_rules=tuple(
            FirewallRule(**rule, synthetic=True) for rule in SAMPLE_FIREWALL_RULES
        ),
        synthetic=True,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Coletores
# ──────────────────────────────────────────────────────────────────────────────

class LinuxFirewallCollector(Collector):
    """Regras do netfilter via `iptables -S` (requer root/CAP_NET_ADMIN)."""

    domain = Domain.FIREWALL

    async def _collect(self) -> DomainRecords:
        rules = parse_iptables_rules(await self._run("iptables", "-S"))
        self._logger.info("%d regras de firewall coletadas.", len(rules))
        return DomainRecords(firewall_rules=tuple(rules))

    def sample_records(self) -> Optional[DomainRecords]:
        return sample_firewall_records()


class WindowsFirewallCollector(Collector):
    """Regras do Windows Defender Firewall via PowerShell."""

    domain = Domain.FIREWALL

    async def _collect(self) -> DomainRecords:
        raw = await self._run(*powershell_argv(PS_GET_FIREWALL_RULES))
        rules = parse_windows_firewall_rules(load_json_records(raw))
        self._logger.info("%d regras de firewall coletadas.", len(rules))
        return DomainRecords(firewall_rules=tuple(rules))

    def sample_records(self) -> Optional[DomainRecords]:
        return sample_firewall_records()
