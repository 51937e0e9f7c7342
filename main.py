"""
main.py
────────
Ponto de entrada de linha de comando do NetPrism.

Comandos:
    refresh                      Coleta todos os domínios e mostra o status.
    interfaces [--available]     Lista interfaces do snapshot.
    ports [filtros] [--export]   Lista (ou exporta) bindings de porta.
    probe ping|http ALVO         Sonda a partir de uma interface.
    terminate PID                Encerra um processo (PIDs protegidos recusados).

Todo comando parte de um refresh: a CLI não mantém cache entre execuções.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from core.config import CoreConfig
from core.errors import ProtectedProcessError, TerminationError
from core.query import FilterCriteria, available_interfaces
from core.schemas import ProbeKind, ProbeRequest, ProbeResult, Snapshot
from core.services.export_service import file_sink
from core.services.state_service import NetworkStateService
from internalloggin.logger import setup_logger

logger = setup_logger(__name__)


# ── Saída ──────────────────────────────────────────────────────────────────────


def _print_status(snapshot: Snapshot) -> None:
    print(f"Snapshot #{snapshot.snapshot_id}  ({snapshot.captured_at:%Y-%m-%d %H:%M:%S} UTC)")
    for domain, status in snapshot.status.items():
        records = snapshot.domain_records(domain)
        if status.ok:
            flag = "ok"
        elif status.stale:
            flag = f"STALE [{status.error_kind.value}]"
        else:
            flag = f"FALHA [{status.error_kind.value}]"
        synthetic = "  (sintético)" if status.synthetic else ""
        print(f"  {domain.value:<10} {flag:<28} {records.count():>5} registros{synthetic}")
        if not status.ok and status.error_message:
            print(f"             ↳ {status.error_message}")


def _print_probe(result: ProbeResult) -> None:
    print(
        f"{result.kind.value} {result.target} via {result.interface_name} "
        f"({result.source_address or '-'}) → {result.state.value} / {result.outcome.value}"
    )
    if result.cause:
        print(f"  causa: {result.cause}")
    if result.loss_percent is not None:
        print(
            f"  perda: {result.loss_percent:.0f}%  rtt min/avg/max: "
            f"{result.rtt_min_ms}/{result.rtt_avg_ms}/{result.rtt_max_ms} ms"
        )
        for attempt in result.attempts:
            rtt = f"{attempt.rtt_ms} ms" if attempt.success else attempt.detail
            print(f"    #{attempt.sequence}: {rtt}")
    if result.http is not None:
        print(f"  HTTP {result.http.http_version} {result.http.status_code}")
        for name, value in result.http.headers:
            print(f"    {name}: {value}")
        if result.http.body_sample:
            suffix = " [...]" if result.http.body_truncated else ""
            print(f"\n{result.http.body_sample}{suffix}")
    elif result.detail and result.state.value != "completed":
        print(f"  {result.detail.strip()}")


# ── Comandos ───────────────────────────────────────────────────────────────────


async def _cmd_refresh(service: NetworkStateService, args: argparse.Namespace) -> int:
    snapshot = await service.refresh()
    _print_status(snapshot)
    return 1 if snapshot.is_degraded and args.strict else 0


async def _cmd_interfaces(service: NetworkStateService, args: argparse.Namespace) -> int:
    snapshot = await service.refresh()
    found = available_interfaces(snapshot) if args.available else snapshot.interfaces
    for iface in found:
        state = "UP" if iface.is_up else "DOWN"
        addresses = ", ".join(str(a) for a in iface.addresses) or "-"
        print(f"{iface.name:<24} {iface.origin.value:<10} {state:<5} {iface.mac_address or '-':<18} {addresses}")
    return 0


async def _cmd_ports(service: NetworkStateService, args: argparse.Namespace) -> int:
    try:
        criteria = FilterCriteria(
            text=args.query,
            process_name=args.process,
            port=args.port,
            port_match="prefix" if args.prefix else "exact",
            pid=args.pid,
            protocol=args.protocol.upper() if args.protocol else None,
            sort_by=args.sort,
            descending=args.desc,
        )
    except ValidationError as exc:
        print(f"Filtro inválido: {exc}", file=sys.stderr)
        return 2

    await service.refresh()
    if args.export:
        ok = service.export_ports(file_sink(args.export), criteria)
        print(f"Exportado para {args.export}" if ok else "Falha na exportação.")
        return 0 if ok else 1

    for binding in service.filter(criteria):
        pid = "-" if binding.pid is None else str(binding.pid)
        print(
            f"{binding.protocol.value:<4} {binding.network:<28} {binding.direction.value:<10} "
            f"{pid:>7}  {binding.process_name}"
        )
    return 0


async def _cmd_probe(service: NetworkStateService, args: argparse.Namespace) -> int:
    try:
        request = ProbeRequest(
            kind=ProbeKind.REACHABILITY if args.kind == "ping" else ProbeKind.HTTP,
            target=args.target,
            interface_name=args.interface,
            interface_origin=args.origin,
            source_address=args.source,
            timeout=args.timeout,
            count=args.count,
            method=args.method,
            headers=[
                (name.strip(), value.strip())
                for name, value in (h.split(":", 1) for h in args.header if ":" in h)
            ],
            body=args.body,
        )
    except ValidationError as exc:
        print(f"Pedido de sonda inválido: {exc}", file=sys.stderr)
        return 2

    await service.refresh()
    result = await service.probe(request)
    _print_probe(result)
    return 0 if result.state.value == "completed" else 1


def _cmd_terminate(service: NetworkStateService, args: argparse.Namespace) -> int:
    try:
        service.terminate_process(args.pid)
    except (ProtectedProcessError, TerminationError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"PID {args.pid} encerrado.")
    return 0


# ── Parser ─────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netprism",
        description="Estado de rede agregado (host, guest, containers) e sondas por interface.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_refresh = sub.add_parser("refresh", help="Coleta todos os domínios e mostra o status.")
    p_refresh.add_argument("--strict", action="store_true", help="Sai com 1 se algum domínio falhar.")

    p_ifaces = sub.add_parser("interfaces", help="Lista interfaces.")
    p_ifaces.add_argument("--available", action="store_true", help="Só ativas e não-loopback.")

    p_ports = sub.add_parser("ports", help="Lista bindings de porta.")
    p_ports.add_argument("-q", "--query", help="Busca livre (processo, rede, protocolo, PID).")
    p_ports.add_argument("--process")
    p_ports.add_argument("--port")
    p_ports.add_argument("--prefix", action="store_true", help="--port casa por prefixo.")
    p_ports.add_argument("--pid", type=int)
    p_ports.add_argument("--protocol", choices=["tcp", "udp", "TCP", "UDP"])
    p_ports.add_argument("--sort", choices=["port", "pid", "process_name", "protocol"])
    p_ports.add_argument("--desc", action="store_true")
    p_ports.add_argument("--export", metavar="ARQUIVO", help="Grava texto tabulado no arquivo.")

    p_probe = sub.add_parser("probe", help="Sonda a partir de uma interface.")
    p_probe.add_argument("kind", choices=["ping", "http"])
    p_probe.add_argument("target")
    p_probe.add_argument("--interface", "-i", required=True)
    p_probe.add_argument("--origin", default="host", choices=["host", "guest", "container"])
    p_probe.add_argument("--source", help="Endereço de origem explícito.")
    p_probe.add_argument("--count", "-c", type=int, default=CoreConfig.PING_COUNT)
    p_probe.add_argument("--timeout", "-t", type=float, default=CoreConfig.PROBE_TIMEOUT)
    p_probe.add_argument("--method", "-X", default="GET")
    p_probe.add_argument("--header", "-H", action="append", default=[], help="'Nome: valor'")
    p_probe.add_argument("--body", "-d")

    p_term = sub.add_parser("terminate", help="Encerra um processo.")
    p_term.add_argument("pid", type=int)

    return parser


_ASYNC_COMMANDS = {
    "refresh": _cmd_refresh,
    "interfaces": _cmd_interfaces,
    "ports": _cmd_ports,
    "probe": _cmd_probe,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    service = NetworkStateService.from_config()

    if args.command == "terminate":
        return _cmd_terminate(service, args)
    try:
        return asyncio.run(_ASYNC_COMMANDS[args.command](service, args))
    except KeyboardInterrupt:
        logger.warning("Interrompido pelo usuário.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
