"""
core/services/state_service.py
──────────────────────────────
Fachada do núcleo do NetPrism — o único ponto de entrada usado pelas
camadas de apresentação (CLI, API Flask, GUI externa).

Operações:
    refresh()             → coleta todos os domínios e publica um Snapshot
    current()             → Snapshot publicado (sem coletar)
    filter(criteria)      → portas filtradas do Snapshot corrente
    dispatch_probe(req)   → ProbeHandle
    probe(req)            → ProbeResult (aguarda o handle)
    terminate_process(pid)
    export_ports(...)     → texto tabulado para um destino

Não guarda estado de UI nem referências a widgets.
"""

from __future__ import annotations

from typing import Optional, Sequence

from collectors.registry import build_collectors
from core.aggregator import Aggregator
from core.config import CoreConfig, Platform
from core.query import FilterCriteria, filter_ports
from core.schemas import PortBinding, ProbeRequest, ProbeResult, Snapshot
from core.services.export_service import PORT_FIELDS, Sink, export, extract_fields
from core.services.probe_dispatcher import ProbeDispatcher, ProbeHandle
from core.services.process_guard import ProcessGuard
from internalloggin.logger import setup_logger

logger = setup_logger(__name__)


class NetworkStateService:
    def __init__(
        self,
        aggregator: Aggregator,
        dispatcher: Optional[ProbeDispatcher] = None,
        guard: Optional[ProcessGuard] = None,
    ) -> None:
        self.aggregator = aggregator
        self.dispatcher = dispatcher or ProbeDispatcher(aggregator.current)
        self.guard = guard or ProcessGuard()

    @classmethod
    def from_config(cls, config: type[CoreConfig] = CoreConfig) -> "NetworkStateService":
        """Monta coletores, aggregator e dispatcher a partir da configuração."""
        platform = config.platform()
        collectors = build_collectors(
            platform,
            timeout=config.COLLECTOR_TIMEOUT,
            synthetic_fallback=config.SYNTHETIC_FALLBACK,
        )
        aggregator = Aggregator(collectors)
        dispatcher = ProbeDispatcher(
            aggregator.current,
            windows=platform == Platform.WINDOWS,
            body_sample=config.HTTP_BODY_SAMPLE,
        )
        logger.info(
            "NetPrism iniciado: plataforma=%s, %d coletores, fallback sintético=%s.",
            platform.value, len(collectors), config.SYNTHETIC_FALLBACK,
        )
        return cls(aggregator, dispatcher)

    # ─── Snapshot ─────────────────────────────────────────────────────────────

    async def refresh(self) -> Snapshot:
        return await self.aggregator.refresh()

    def current(self) -> Snapshot:
        return self.aggregator.current()

    def filter(self, criteria: Optional[FilterCriteria] = None) -> tuple[PortBinding, ...]:
        return filter_ports(self.current(), criteria or FilterCriteria())

    # ─── Sondas ───────────────────────────────────────────────────────────────

    def dispatch_probe(self, request: ProbeRequest) -> ProbeHandle:
        return self.dispatcher.dispatch(request)

    async def probe(self, request: ProbeRequest) -> ProbeResult:
        return await self.dispatcher.probe(request)

    # ─── Colaboradores ────────────────────────────────────────────────────────

    def terminate_process(self, pid: Optional[int]) -> None:
        self.guard.terminate(pid)

    def export_ports(
        self,
        sink: Sink,
        criteria: Optional[FilterCriteria] = None,
        fields: Sequence[str] = PORT_FIELDS,
    ) -> bool:
        rows = extract_fields(self.filter(criteria), fields)
        return export(rows, sink, fields)
