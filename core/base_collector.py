"""
core/base_collector.py
──────────────────────
Define o contrato abstrato que todos os Collector Adapters devem seguir.

Design Decisions
────────────────
1. ABC com um único método obrigatório:
   Subclasses implementam apenas `_collect()`, que devolve um DomainRecords
   ou LANÇA um CollectorError tipado. O método público `collect()` é concreto
   e idêntico para todos os domínios: aplica o timeout e converte qualquer
   falha em um CollectorResult sinalizado. Assim nenhum coletor consegue
   abortar o refresh inteiro.

2. `run_command()` na base:
   Todo coletor invoca ferramentas externas do mesmo jeito — subprocesso
   assíncrono, timeout obrigatório e mapeamento uniforme de erros
   (binário ausente → Unavailable, EACCES → PermissionDenied, ...).
   Em timeout ou cancelamento o processo é morto e colhido antes de retornar.

3. Logging por classe:
   Logger nomeado `modulo.Classe`, para filtrar os logs por domínio de coleta.

4. Dados sintéticos só com opt-in:
   `synthetic_fallback=True` + erro Unavailable/ParseError → o resultado
   carrega `sample_records()` marcados com synthetic=True. Nunca silencioso.
"""

from __future__ import annotations

import asyncio
import errno
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from core.constants import DEFAULT_COLLECTOR_TIMEOUT, RAW_SNIPPET_CHARS
from core.errors import (
    CollectorError,
    ErrorKind,
    ParseError,
    PermissionDenied,
    Timeout,
    Unavailable,
)
from core.schemas import Domain, DomainRecords
from internalloggin.logger import setup_logger

_PERMISSION_MARKERS = ("permission denied", "operation not permitted", "access is denied")


@dataclass(frozen=True, slots=True)
class CollectorResult:
    """Resultado de um ciclo de coleta: registros OU erro tipado (com flag)."""

    domain: Domain
    records: DomainRecords
    error: Optional[CollectorError] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None


async def run_command(
    argv: Sequence[str],
    timeout: float,
    logger: Any = None,
) -> str:
    """
    Executa um comando externo e devolve o stdout decodificado.

    Raises:
        Unavailable:      Binário ausente ou saída com código != 0.
        PermissionDenied: Sem privilégio para executar/ler.
        Timeout:          O comando excedeu `timeout` segundos.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise Unavailable(f"Comando não encontrado: {argv[0]}") from exc
    except PermissionError as exc:
        raise PermissionDenied(f"Sem permissão para executar {argv[0]}") from exc
    except OSError as exc:
        if exc.errno in (errno.EACCES, errno.EPERM):
            raise PermissionDenied(f"Sem permissão para executar {argv[0]}") from exc
        raise Unavailable(f"Falha ao iniciar {argv[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        await _kill(proc)
        raise Timeout(f"'{' '.join(argv)}' excedeu {timeout:.1f}s") from exc
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace").strip()
    if logger is not None:
        logger.debug(
            "'%s' → rc=%s (%d caracteres).", " ".join(argv), proc.returncode, len(out)
        )

    if proc.returncode != 0:
        if any(marker in err.lower() for marker in _PERMISSION_MARKERS):
            raise PermissionDenied(f"{argv[0]}: {err[:RAW_SNIPPET_CHARS]}")
        raise Unavailable(
            f"{argv[0]} terminou com código {proc.returncode}: {err[:RAW_SNIPPET_CHARS]}"
        )
    return out


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Mata e colhe o processo; idempotente."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    try:
        await proc.wait()
    except ProcessLookupError:
        pass


def load_json_records(raw: str) -> list[dict[str, Any]]:
    """
    Lê a saída JSON do PowerShell/Docker.

    `ConvertTo-Json` devolve um OBJETO quando há um único item e uma LISTA
    quando há vários; saída vazia significa nenhum item.

    Raises:
        ParseError: Se o texto não for JSON válido.
    """
    text = raw.strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"JSON inválido: {exc.msg}", raw_snippet=text) from exc
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    raise ParseError("JSON inesperado (nem objeto nem lista).", raw_snippet=text)


_PS_PREFIX: tuple[str, ...] = (
    "powershell.exe", "-NoProfile", "-NonInteractive", "-Command",
)
# Sem isto o console usa a code page OEM e nomes acentuados viram '?'
_PS_UTF8 = (
    "$OutputEncoding = [console]::InputEncoding = [console]::OutputEncoding = "
    "New-Object System.Text.UTF8Encoding; "
)


def powershell_argv(script: str) -> tuple[str, ...]:
    """argv para rodar `script` no PowerShell com saída em UTF-8."""
    return (*_PS_PREFIX, _PS_UTF8 + script)


class Collector(ABC):
    """
    Contrato abstrato dos Collector Adapters (um por domínio).

    Subclasses devem definir:
        - domain       → o Domain que este coletor preenche
        - _collect()   → coleta + parsing, devolvendo DomainRecords

    E podem sobrescrever:
        - sample_records() → placeholders sintéticos para continuidade da UI
    """

    domain: Domain

    def __init__(
        self,
        timeout: float = DEFAULT_COLLECTOR_TIMEOUT,
        synthetic_fallback: bool = False,
    ) -> None:
        self.timeout: float = timeout
        self.synthetic_fallback: bool = synthetic_fallback
        self._logger = setup_logger(
            self.__class__.__module__ + "." + self.__class__.__name__
        )

    # ─── Método Abstrato (contrato obrigatório) ──────────────────────────────

    @abstractmethod
    async def _collect(self) -> DomainRecords:
        """
        Invoca a fonte externa e normaliza a saída.

        Raises:
            CollectorError: Unavailable, PermissionDenied, Timeout ou ParseError.
        """

    # ─── Ponto de entrada (implementado na base) ─────────────────────────────

    async def collect(self) -> CollectorResult:
        """
        Executa `_collect()` sob timeout e nunca lança (exceto cancelamento).

        Em falha devolve DomainRecords vazio — ou os placeholders sintéticos,
        se habilitados — junto com o erro tipado.
        """
        started = time.perf_counter()
        try:
            records = await asyncio.wait_for(self._collect(), timeout=self.timeout)
        except asyncio.TimeoutError:
            error: CollectorError = Timeout(
                f"Coleta de '{self.domain.value}' excedeu {self.timeout:.1f}s"
            )
        except CollectorError as exc:
            error = exc
        except Exception as exc:  # noqa: BLE001
            # Falha inesperada de parsing/validação: vira ParseError tipado
            self._logger.exception("Erro inesperado no coletor %s", self.__class__.__name__)
            error = ParseError(f"{type(exc).__name__}: {exc}", raw_snippet=str(exc))
        else:
            elapsed = (time.perf_counter() - started) * 1000
            self._logger.debug(
                "Domínio '%s' coletado: %d registros em %.1f ms.",
                self.domain.value, records.count(), elapsed,
            )
            return CollectorResult(self.domain, records, None, elapsed)

        elapsed = (time.perf_counter() - started) * 1000
        self._logger.warning(
            "Falha na coleta de '%s' [%s]: %s", self.domain.value, error.kind.value, error
        )
        return CollectorResult(self.domain, self.fallback_records(error), error, elapsed)

    # ─── Helpers ─────────────────────────────────────────────────────────────

    def sample_records(self) -> Optional[DomainRecords]:
        """Placeholders sintéticos do domínio; None se o coletor não oferece."""
        return None

    def fallback_records(self, error: CollectorError) -> DomainRecords:
        """Registros publicados quando a coleta falha: sintéticos (opt-in) ou vazio."""
        if self.synthetic_fallback and isinstance(error, (Unavailable, ParseError)):
            sample = self.sample_records()
            if sample is not None:
                self._logger.warning(
                    "Usando dados SINTÉTICOS para '%s' (%d registros).",
                    self.domain.value, sample.count(),
                )
                return sample.as_synthetic()
        return DomainRecords()

    async def _run(self, *argv: str) -> str:
        return await run_command(argv, timeout=self.timeout, logger=self._logger)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} domain={self.domain.value} "
            f"timeout={self.timeout}>"
        )
