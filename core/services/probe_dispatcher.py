"""
core/services/probe_dispatcher.py
─────────────────────────────────
Dispara sondas (alcançabilidade e HTTP) a partir de uma interface
selecionada e devolve resultados estruturados.

Design Decisions
────────────────
1. Handle por sonda:
   `dispatch()` cria uma task asyncio e devolve um ProbeHandle com a máquina
   de estados Idle → Binding → InFlight → {Completed, TimedOut, Failed}.
   Uma vez terminal, o estado não muda mais.

2. Binding contra o snapshot MAIS RECENTE:
   A interface é procurada no snapshot publicado no momento do disparo.
   Interface ausente, sem endereços ou endereço de origem alheio →
   Failed(InterfaceUnavailable), sem tocar a rede.

3. Cancelamento:
   `ProbeHandle.cancel()` fixa o resultado Failed(cause="cancelled")
   imediatamente; a task é cancelada e mata o ping / fecha o socket no
   caminho de saída. `result()` só devolve depois dessa limpeza.

4. Nenhum erro escapa de `result()`: toda falha vira um ProbeResult terminal.
"""

from __future__ import annotations

import asyncio
import ipaddress
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

import httpx

from core.constants import HTTP_BODY_SAMPLE_BYTES
from core.errors import (
    CollectorError,
    ErrorKind,
    InterfaceUnavailable,
    Timeout,
    TransportError,
)
from core.schemas import (
    IPVersion,
    NetworkInterface,
    ProbeKind,
    ProbeOutcome,
    ProbeRequest,
    ProbeResult,
    ProbeState,
    Snapshot,
)
from core.services.http_probe import (
    TransportFactory,
    default_transport,
    http_exchange,
    normalize_url,
)
from core.services.ping_service import (
    PingRun,
    build_ping_argv,
    parse_ping_output,
    ping_deadline,
    run_ping,
)
from internalloggin.logger import setup_logger

logger = setup_logger(__name__)

SnapshotProvider = Callable[[], Snapshot]
PingRunner = Callable[[Sequence[str], float], Awaitable[PingRun]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Seleção de origem ───────────────────────────────────────────────────────


def _target_family(request: ProbeRequest) -> Optional[IPVersion]:
    """Família do alvo quando ele é um IP literal; None para hostnames."""
    host = request.target
    if request.kind == ProbeKind.HTTP:
        try:
            host = httpx.URL(normalize_url(request.target)).host
        except httpx.InvalidURL:
            return None
    try:
        parsed = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return None
    return IPVersion.V6 if parsed.version == 6 else IPVersion.V4


def select_source_address(
    interface: Optional[NetworkInterface],
    request: ProbeRequest,
) -> str:
    """
    Endereço de origem da sonda.

    Ordem: endereço explícito (se pertencer à interface) → primeiro endereço
    da família do alvo, preferindo IPv4 não link-local.

    Raises:
        InterfaceUnavailable: Interface ausente, sem endereços utilizáveis ou
            endereço explícito que não pertence a ela.
    """
    label = f"{request.interface_name}/{request.interface_origin.value}"
    if interface is None:
        raise InterfaceUnavailable(f"Interface '{label}' não existe no snapshot atual.")
    if not interface.addresses:
        raise InterfaceUnavailable(f"Interface '{label}' não possui endereços.")

    if request.source_address:
        if request.source_address not in {a.address for a in interface.addresses}:
            raise InterfaceUnavailable(
                f"Endereço {request.source_address} não pertence a '{label}'."
            )
        return request.source_address

    family = _target_family(request)
    candidates = [a for a in interface.addresses if family is None or a.version == family]
    if not candidates:
        raise InterfaceUnavailable(
            f"Interface '{label}' não possui endereço {family.value if family else ''}."
        )
    for address in candidates:
        if address.version == IPVersion.V4 and not address.is_link_local:
            return address.address
    for address in candidates:
        if not address.is_link_local:
            return address.address
    return candidates[0].address


# ─── Handle ──────────────────────────────────────────────────────────────────


class ProbeHandle:
    """Referência a uma sonda em andamento; pertence ao chamador."""

    def __init__(self, request: ProbeRequest) -> None:
        self.request = request
        self.started_at: datetime = _utcnow()
        self._started = time.perf_counter()
        self._state: ProbeState = ProbeState.IDLE
        self._result: Optional[ProbeResult] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ProbeState:
        return self._state

    def done(self) -> bool:
        return self._result is not None

    def cancel(self) -> ProbeResult:
        """Cancela a sonda; o resultado Failed(cause='cancelled') vale de imediato."""
        if self._result is None:
            self.finish(self.cancelled_result())
            if self._task is not None:
                self._task.cancel()
        return self._result

    async def result(self) -> ProbeResult:
        """Aguarda o resultado terminal (nunca lança por falha da sonda)."""
        # Após cancel() o resultado já existe, mas a task ainda precisa matar
        # e colher o ping / fechar o socket antes de devolvermos.
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        if self._result is None:
            raise RuntimeError("Sonda não foi iniciada.")
        return self._result

    # ── Uso interno do dispatcher ─────────────────────────────────────────────

    def attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def outcome(self) -> Optional[ProbeOutcome]:
        return self._result.outcome if self._result is not None else None

    def advance(self, state: ProbeState) -> None:
        if not self._state.is_terminal:
            self._state = state

    def finish(self, result: ProbeResult) -> None:
        # O primeiro resultado terminal vence (cancel() pode chegar antes)
        if self._result is None:
            self._result = result
            self._state = result.state

    def cancelled_result(self) -> ProbeResult:
        return self.build_result(
            ProbeState.FAILED,
            ProbeOutcome.ERROR,
            error_kind=ErrorKind.CANCELLED,
            cause="cancelled",
            detail="Sonda cancelada pelo chamador.",
        )

    def build_result(
        self,
        state: ProbeState,
        outcome: ProbeOutcome,
        source_address: Optional[str] = None,
        **fields,
    ) -> ProbeResult:
        return ProbeResult(
            kind=self.request.kind,
            target=self.request.target,
            interface_name=self.request.interface_name,
            interface_origin=self.request.interface_origin,
            source_address=source_address,
            state=state,
            outcome=outcome,
            duration_ms=(time.perf_counter() - self._started) * 1000,
            started_at=self.started_at,
            **fields,
        )


# ─── Dispatcher ──────────────────────────────────────────────────────────────


class ProbeDispatcher:
    """
    Parameters
    ----------
    snapshot_provider : Callable[[], Snapshot]
        Devolve o snapshot publicado mais recente (ex: Aggregator.current).
    ping_runner : PingRunner
        Executor do binário ping; injetável nos testes.
    transport_factory : TransportFactory
        Fábrica de transporte httpx por endereço de origem.
    windows : bool
        Sintaxe de ping do Windows (-n/-w/-S).
    """

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        ping_runner: PingRunner = run_ping,
        transport_factory: TransportFactory = default_transport,
        windows: bool = False,
        body_sample: int = HTTP_BODY_SAMPLE_BYTES,
    ) -> None:
        self._snapshot_provider = snapshot_provider
        self._ping_runner = ping_runner
        self._transport_factory = transport_factory
        self._windows = windows
        self._body_sample = body_sample

    def dispatch(self, request: ProbeRequest) -> ProbeHandle:
        """Inicia a sonda imediatamente. Requer um event loop em execução."""
        handle = ProbeHandle(request)
        handle.attach(asyncio.get_running_loop().create_task(self._run(handle)))
        return handle

    async def probe(self, request: ProbeRequest) -> ProbeResult:
        return await self.dispatch(request).result()

    async def _run(self, handle: ProbeHandle) -> None:
        request = handle.request
        try:
            result = await self._execute(handle)
        except asyncio.CancelledError:
            handle.finish(handle.cancelled_result())
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Falha inesperada na sonda %s → %s", request.kind.value, request.target)
            result = handle.build_result(
                ProbeState.FAILED,
                ProbeOutcome.ERROR,
                error_kind=ErrorKind.TRANSPORT_ERROR,
                cause="internal",
                detail=f"{type(exc).__name__}: {exc}",
            )
        handle.finish(result)
        logger.info(
            "Sonda %s %s via %s/%s → %s (%s).",
            request.kind.value, request.target, request.interface_name,
            request.interface_origin.value, handle.state.value,
            handle.outcome.value if handle.outcome else "-",
        )

    async def _execute(self, handle: ProbeHandle) -> ProbeResult:
        request = handle.request
        handle.advance(ProbeState.BINDING)
        snapshot = self._snapshot_provider()
        try:
            source = select_source_address(
                snapshot.interface(request.interface_name, request.interface_origin),
                request,
            )
        except InterfaceUnavailable as exc:
            logger.warning("Sonda recusada: %s", exc)
            return handle.build_result(
                ProbeState.FAILED,
                ProbeOutcome.ERROR,
                error_kind=exc.kind,
                cause="interface_unavailable",
                detail=str(exc),
            )

        handle.advance(ProbeState.IN_FLIGHT)
        if request.kind == ProbeKind.REACHABILITY:
            return await self._reachability(handle, source)
        return await self._http(handle, source)

    # ── Alcançabilidade ───────────────────────────────────────────────────────

    async def _reachability(self, handle: ProbeHandle, source: str) -> ProbeResult:
        request = handle.request
        argv = build_ping_argv(
            request.target, request.count, request.timeout, source, windows=self._windows
        )
        deadline = ping_deadline(request.count, request.timeout, windows=self._windows)
        logger.debug("Executando: %s (prazo %.1fs)", " ".join(argv), deadline)

        try:
            run = await self._ping_runner(argv, deadline)
        except CollectorError as exc:
            return handle.build_result(
                ProbeState.FAILED,
                ProbeOutcome.ERROR,
                source_address=source,
                error_kind=exc.kind,
                cause=exc.kind.value,
                detail=str(exc),
            )

        report = parse_ping_output(run.output, request.count, windows=self._windows)
        stats = {
            "attempts": report.attempts,
            "loss_percent": report.loss_percent,
            "rtt_min_ms": report.rtt_min,
            "rtt_avg_ms": report.rtt_avg,
            "rtt_max_ms": report.rtt_max,
            "detail": run.output,
        }

        if report.received >= 1:
            return handle.build_result(
                ProbeState.COMPLETED, ProbeOutcome.SUCCESS, source_address=source, **stats
            )
        if report.permission_denied:
            return handle.build_result(
                ProbeState.FAILED, ProbeOutcome.ERROR, source_address=source,
                error_kind=ErrorKind.PERMISSION_DENIED, cause="permission_denied", **stats,
            )
        if report.dns_failure or report.bind_failure:
            return handle.build_result(
                ProbeState.FAILED, ProbeOutcome.ERROR, source_address=source,
                error_kind=ErrorKind.TRANSPORT_ERROR,
                cause="dns" if report.dns_failure else "bind", **stats,
            )
        if report.unreachable:
            return handle.build_result(
                ProbeState.FAILED, ProbeOutcome.UNREACHABLE, source_address=source,
                error_kind=ErrorKind.TRANSPORT_ERROR, cause="unreachable", **stats,
            )
        if not run.killed and run.returncode not in (0, 1, None):
            # Código 2 do iputils: erro de uso/rede sem nenhum eco enviado
            return handle.build_result(
                ProbeState.FAILED, ProbeOutcome.ERROR, source_address=source,
                error_kind=ErrorKind.TRANSPORT_ERROR, cause="transport", **stats,
            )
        return handle.build_result(
            ProbeState.TIMED_OUT, ProbeOutcome.TIMEOUT, source_address=source,
            error_kind=ErrorKind.TIMEOUT, cause="timeout", **stats,
        )

    # ── HTTP ──────────────────────────────────────────────────────────────────

    async def _http(self, handle: ProbeHandle, source: str) -> ProbeResult:
        request = handle.request
        try:
            capture = await http_exchange(
                request, source, self._transport_factory, self._body_sample
            )
        except Timeout as exc:
            return handle.build_result(
                ProbeState.TIMED_OUT, ProbeOutcome.TIMEOUT, source_address=source,
                error_kind=ErrorKind.TIMEOUT, cause="timeout", detail=str(exc),
            )
        except TransportError as exc:
            return handle.build_result(
                ProbeState.FAILED, ProbeOutcome.ERROR, source_address=source,
                error_kind=exc.kind, cause=exc.cause, detail=str(exc),
            )
        return handle.build_result(
            ProbeState.COMPLETED,
            ProbeOutcome.SUCCESS,
            source_address=source,
            http=capture,
            detail=f"HTTP {capture.http_version} {capture.status_code}",
        )

