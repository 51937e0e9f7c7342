"""
collectors/ports.py
───────────────────
Coletores de bindings de porta / processos (domínio ports).

Variantes:
    - LinuxPortCollector   : `ss -tuanpH`
    - WindowsPortCollector : `Get-NetTCPConnection -State Listen` (JSON);
                             fallback `netstat -ano -p TCP` + `tasklist`.

Direção (Linux):
    LISTEN / UNCONN              → listening
    socket cuja porta local é
    uma porta em escuta          → inbound
    demais                       → outbound
"""

from __future__ import annotations

import asyncio
import csv
import io
import re
from typing import Any, Iterable, Optional

from core.base_collector import Collector, load_json_records, powershell_argv
from core.errors import CollectorError, ParseError
from core.schemas import Domain, DomainRecords, PortBinding, PortDirection

_RE_SS_PROCESS = re.compile(r'users:\(\("([^"]*)",pid=(\d+)')
_LISTEN_STATES = frozenset({"LISTEN", "UNCONN"})

PS_GET_TCP_LISTENERS = (
    "Get-NetTCPConnection -State Listen | Select-Object LocalAddress, LocalPort, "
    "OwningProcess, State, @{Name='ProcessName';Expression={(Get-Process -Id "
    "$_.OwningProcess -ErrorAction SilentlyContinue).ProcessName}} | "
    "ConvertTo-Json -Depth 2"
)


# ──────────────────────────────────────────────────────────────────────────────
# Parsing (funções puras)
# ──────────────────────────────────────────────────────────────────────────────

def split_host_port(token: str) -> tuple[str, int]:
    """
    Separa 'host:porta' como exibido por ss/netstat.

        '0.0.0.0:22'        → ('0.0.0.0', 22)
        '[::]:80'           → ('::', 80)
        '127.0.0.53%lo:53'  → ('127.0.0.53', 53)
        '*:*'               → ('*', 0)

    Raises:
        ParseError: Sem separador ou porta não numérica.
    """
    if ":" not in token:
        raise ParseError(f"Endereço sem porta: '{token}'.", raw_snippet=token)
    host, port_text = token.rsplit(":", 1)
    host = host.strip("[]").split("%", 1)[0] or "*"
    if port_text == "*":
        return host, 0
    if not port_text.isdigit():
        raise ParseError(f"Porta inválida: '{port_text}'.", raw_snippet=token)
    return host, int(port_text)


def parse_ss(raw: str) -> list[PortBinding]:
    """
    Parseia `ss -tuanpH` (sem cabeçalho).

    Formato:
        tcp LISTEN 0 4096 0.0.0.0:22 0.0.0.0:* users:(("sshd",pid=800,fd=3))

    Linhas de outros netids (u_str, raw, ...) são ignoradas.

    Raises:
        ParseError: Linha tcp/udp com colunas insuficientes ou endereço inválido.
    """
    rows: list[tuple[str, str, str, int, Optional[str], Optional[str], Optional[int]]] = []
    for line in raw.splitlines():
        parts = line.split()
        if not parts:
            continue
        netid = parts[0].lower()
        if netid not in ("tcp", "udp"):
            continue
        if len(parts) < 6:
            raise ParseError("Linha do ss com colunas insuficientes.", raw_snippet=line)

        state = parts[1].upper()
        local_host, local_port = split_host_port(parts[4])
        peer_host, peer_port = split_host_port(parts[5])
        remote = None if peer_port == 0 else f"{peer_host}:{peer_port}"

        match = _RE_SS_PROCESS.search(line)
        name = match.group(1) if match else None
        pid = int(match.group(2)) if match else None
        rows.append((netid, state, local_host, local_port, remote, name, pid))

    listening = {(r[0], r[3]) for r in rows if r[1] in _LISTEN_STATES}

    bindings: list[PortBinding] = []
    for netid, state, local_host, local_port, remote, name, pid in rows:
        if state in _LISTEN_STATES:
            direction = PortDirection.LISTENING
        elif (netid, local_port) in listening:
            direction = PortDirection.INBOUND
        else:
            direction = PortDirection.OUTBOUND
        bindings.append(
            PortBinding(
                pid=pid,
                process_name=name or "N/A",
                protocol=netid,
                port=local_port,
                direction=direction,
                local_address=local_host,
                remote_address=remote,
                network=f"{local_host}:{local_port}",
                state=state,
            )
        )
    return bindings


def parse_tcp_listeners(items: Iterable[dict[str, Any]]) -> list[PortBinding]:
    """
    Converte `Get-NetTCPConnection` (JSON) em PortBinding.

    State pode vir como inteiro (Listen = 2) ou texto, conforme a versão
    do PowerShell.
    """
    bindings: list[PortBinding] = []
    for item in items:
        state = item.get("State")
        if state not in (2, "2", "Listen"):
            continue
        address = str(item.get("LocalAddress") or "*")
        port = int(item.get("LocalPort") or 0)
        pid = item.get("OwningProcess")
        bindings.append(
            PortBinding(
                pid=int(pid) if pid is not None else None,
                process_name=item.get("ProcessName") or "N/A",
                protocol="TCP",
                port=port,
                direction=PortDirection.LISTENING,
                local_address=address,
                network=f"{address}:{port}",
                state="LISTEN",
            )
        )
    return bindings


def parse_tasklist(raw: str) -> dict[int, str]:
    """`tasklist /FO CSV /NH` → {pid: nome da imagem}."""
    names: dict[int, str] = {}
    for row in csv.reader(io.StringIO(raw)):
        if len(row) >= 2 and row[1].strip().isdigit():
            names[int(row[1])] = row[0].strip()
    return names


def parse_netstat_listening(
    raw: str, process_names: Optional[dict[int, str]] = None
) -> list[PortBinding]:
    """
    Parseia `netstat -ano -p TCP`, mantendo só linhas LISTENING.

    Formato:
        TCP    0.0.0.0:135    0.0.0.0:0    LISTENING    1234
    """
    process_names = process_names or {}
    bindings: list[PortBinding] = []
    for line in raw.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[3].upper() != "LISTENING":
            continue
        host, port = split_host_port(parts[1])
        pid = int(parts[4]) if parts[4].isdigit() else None
        bindings.append(
            PortBinding(
                pid=pid,
                process_name=process_names.get(pid, "N/A") if pid is not None else "N/A",
                protocol=parts[0],
                port=port,
                direction=PortDirection.LISTENING,
                local_address=host,
                network=f"{host}:{port}",
                state="LISTEN",
            )
        )
    return bindings


# ──────────────────────────────────────────────────────────────────────────────
# Coletores
# ──────────────────────────────────────────────────────────────────────────────

class LinuxPortCollector(Collector):
    """Sockets TCP/UDP via iproute2 `ss` (processos exigem privilégio)."""

    domain = Domain.PORTS

    async def _collect(self) -> DomainRecords:
        raw = await self._run("ss", "-tuanpH")
        bindings = parse_ss(raw)
        self._logger.info("%d sockets coletados.", len(bindings))
        return DomainRecords(ports=tuple(bindings))


class WindowsPortCollector(Collector):
    """Portas TCP em escuta no Windows."""

    domain = Domain.PORTS

    async def _collect(self) -> DomainRecords:
        bindings: list[PortBinding] = []
        try:
            raw = await self._run(*powershell_argv(PS_GET_TCP_LISTENERS))
            bindings = parse_tcp_listeners(load_json_records(raw))
        except CollectorError as exc:
            self._logger.warning(
                "Get-NetTCPConnection falhou (%s); usando netstat.", exc.kind.value
            )

        if not bindings:
            bindings = await self._collect_netstat()

        self._logger.info("%d portas em escuta coletadas.", len(bindings))
        return DomainRecords(ports=tuple(bindings))

    async def _collect_netstat(self) -> list[PortBinding]:
        netstat_out, tasklist_out = await asyncio.gather(
            self._run("netstat", "-ano", "-p", "TCP"),
            self._run("tasklist", "/FO", "CSV", "/NH"),
            return_exceptions=True,
        )
        if isinstance(netstat_out, BaseException):
            raise netstat_out

        names: dict[int, str] = {}
        if isinstance(tasklist_out, CollectorError):
            self._logger.warning("tasklist indisponível: %s", tasklist_out)
        elif isinstance(tasklist_out, BaseException):
            raise tasklist_out
        else:
            names = parse_tasklist(tasklist_out)
        return parse_netstat_listening(netstat_out, names)
