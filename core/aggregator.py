"""
core/aggregator.py
──────────────────
Funde os resultados dos Collector Adapters em um Snapshot imutável e o
publica por troca atômica de referência.

Design Decisions
────────────────
1. Fan-out com asyncio.gather:
   Uma task por coletor; cada uma termina, falha ou expira de forma
   independente. `Collector.collect()` já não lança, e a guarda extra de
   `timeout + grace` cobre coletores que ignoram o próprio timeout.

2. Política de fallback por domínio:
   sucesso                                → registros novos, ok=True
   falha + dado real no snapshot anterior → dado anterior, stale=True,
                                            collected_at original
   falha sem dado anterior                → placeholders sintéticos (opt-in)
                                            ou vazio; sempre com o erro.

3. Publicação:
   O Snapshot é construído inteiro e só então atribuído a `_current`.
   Leitores concorrentes veem o snapshot antigo OU o novo, nunca uma mistura.
   Refresh cancelado não publica nada. Dois refreshes sobrepostos: o último a
   terminar é o publicado. O `snapshot_id` é atribuído na publicação, então
   cresce sempre na ordem em que os leitores observam os snapshots.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from core.base_collector import Collector, CollectorResult
from core.constants import COLLECTOR_GRACE_SECONDS
from core.errors import CollectorError, ParseError, Timeout
from core.schemas import Domain, DomainRecords, DomainStatus, Snapshot
from internalloggin.logger import setup_logger

logger = setup_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def find_duplicate_interfaces(records: DomainRecords) -> list[str]:
    """Chaves (name, origin) repetidas em um resultado de domínio."""
    counts = Counter(iface.key for iface in records.interfaces)
    return [f"{name}/{origin.value}" for (name, origin), n in counts.items() if n > 1]


class Aggregator:
    """
    Dono do cache de Snapshot.

    Parameters
    ----------
    collectors : Iterable[Collector]
        Conjunto fixo de coletores (um por domínio).
    clock : Callable[[], datetime]
        Fonte de tempo UTC; injetável nos testes.
    grace : float
        Folga, em segundos, sobre o timeout de cada coletor.
    """

    def __init__(
        self,
        collectors: Iterable[Collector],
        clock: Callable[[], datetime] = _utcnow,
        grace: float = COLLECTOR_GRACE_SECONDS,
    ) -> None:
        self._collectors: tuple[Collector, ...] = tuple(collectors)
        self._clock = clock
        self._grace = grace
        self._current: Snapshot = Snapshot.empty()
        self._ids = itertools.count(1)
        self._publish_lock = threading.Lock()

    @property
    def collectors(self) -> tuple[Collector, ...]:
        return self._collectors

    @property
    def generation(self) -> int:
        """Id do último snapshot publicado (0 antes do primeiro refresh)."""
        return self._current.snapshot_id

    # ─── Leitura ──────────────────────────────────────────────────────────────

    def current(self) -> Snapshot:
        """Snapshot publicado mais recente. Nunca bloqueia nem dispara coleta."""
        return self._current

    def staleness(self, now: Optional[datetime] = None) -> timedelta:
        """Idade do snapshot corrente."""
        return (now or self._clock()) - self._current.captured_at

    def is_stale(self, max_age: float, now: Optional[datetime] = None) -> bool:
        """True se nunca houve refresh ou se o snapshot é mais velho que `max_age` s."""
        if self._current.snapshot_id == 0:
            return True
        return self.staleness(now).total_seconds() > max_age

    # ─── Refresh ──────────────────────────────────────────────────────────────

    async def refresh(self) -> Snapshot:
        """
        Executa todos os coletores em paralelo, funde e publica.

        Raises:
            asyncio.CancelledError: Refresh cancelado (nada é publicado).
        """
        results = await asyncio.gather(
            *(self._collect_guarded(collector) for collector in self._collectors)
        )

        # Base do fallback = o que estiver publicado AGORA (pode ter mudado
        # durante a coleta, se outro refresh terminou antes)
        previous = self._current
        now = self._clock()
        records: dict[Domain, DomainRecords] = {}
        status: dict[Domain, DomainStatus] = {}
        for collector, result in zip(self._collectors, results):
            records[result.domain], status[result.domain] = self._merge_domain(
                collector, result, previous, now
            )

        # Id e troca de referência sob o mesmo lock: a API publica de várias threads
        with self._publish_lock:
            snapshot = Snapshot(
                snapshot_id=next(self._ids),
                captured_at=now,
                records=records,
                status=status,
            )
            self._current = snapshot

        failed = [d.value for d, s in status.items() if not s.ok]
        logger.info(
            "Snapshot #%d publicado: %d interfaces, %d portas, %d regras, %d rotas, "
            "%d redes de container. Domínios com falha: %s",
            snapshot.snapshot_id, len(snapshot.interfaces), len(snapshot.ports),
            len(snapshot.firewall_rules), len(snapshot.routes),
            len(snapshot.container_networks), ", ".join(failed) or "nenhum",
        )
        return snapshot

    async def _collect_guarded(self, collector: Collector) -> CollectorResult:
        try:
            return await asyncio.wait_for(
                collector.collect(), timeout=collector.timeout + self._grace
            )
        except asyncio.TimeoutError:
            error = Timeout(
                f"Coletor de '{collector.domain.value}' não respondeu em "
                f"{collector.timeout + self._grace:.1f}s"
            )
            return CollectorResult(collector.domain, collector.fallback_records(error), error)

    # ─── Merge por domínio ────────────────────────────────────────────────────

    def _merge_domain(
        self,
        collector: Collector,
        result: CollectorResult,
        previous: Snapshot,
        now: datetime,
    ) -> tuple[DomainRecords, DomainStatus]:
        domain = result.domain
        error: Optional[CollectorError] = result.error
        records = result.records

        if error is None:
            duplicates = find_duplicate_interfaces(records)
            if duplicates:
                error = ParseError(
                    f"Chave de interface duplicada: {', '.join(duplicates)}",
                    raw_snippet=", ".join(duplicates),
                )
                records = collector.fallback_records(error)

        if error is None:
            return records, DomainStatus(
                domain=domain,
                ok=True,
                synthetic=records.synthetic,
                collected_at=now,
                duration_ms=result.duration_ms,
            )

        logger.warning(
            "Domínio '%s' falhou [%s]: %s", domain.value, error.kind.value, error
        )
        error_fields = {
            "error_kind": error.kind,
            "error_message": str(error),
            "raw_snippet": getattr(error, "raw_snippet", None) or None,
            "duration_ms": result.duration_ms,
        }

        prev_records = previous.records.get(domain)
        prev_status = previous.status.get(domain)
        if prev_records is not None and not prev_records.is_empty and not prev_records.synthetic:
            return prev_records, DomainStatus(
                domain=domain,
                ok=False,
                stale=True,
                collected_at=prev_status.collected_at if prev_status else None,
                **error_fields,
            )

        return records, DomainStatus(
            domain=domain,
            ok=False,
            synthetic=records.synthetic,
            collected_at=now if records.synthetic else None,
            **error_fields,
        )
