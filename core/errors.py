"""
core/errors.py
──────────────
Taxonomia de erros do NetPrism.

Design Decisions
────────────────
1. Exceções tipadas nas bordas, objetos de resultado no contrato:
   Os coletores e o dispatcher LANÇAM estas exceções internamente, mas nunca
   as deixam atravessar a fronteira do componente. O Aggregator converte
   CollectorError em flag de domínio + fallback; o ProbeDispatcher converte
   qualquer falha em um ProbeResult terminal.

2. `kind` como atributo de classe:
   Cada exceção carrega um ErrorKind (str Enum) que é o valor serializado
   nos DomainStatus / ProbeResult. Assim a camada de apresentação nunca
   precisa inspecionar tipos Python.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Valores serializáveis da taxonomia de erros."""

    UNAVAILABLE = "unavailable"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    INTERFACE_UNAVAILABLE = "interface_unavailable"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"


class NetPrismError(Exception):
    """Raiz de todas as exceções do NetPrism."""

    kind: Optional[ErrorKind] = None


# ─── Erros de coleta ─────────────────────────────────────────────────────────

class CollectorError(NetPrismError):
    """Falha de um Collector Adapter ao obter dados do seu domínio."""


class Unavailable(CollectorError):
    """Ferramenta/API externa ausente ou retornou erro de execução."""

    kind = ErrorKind.UNAVAILABLE


class PermissionDenied(CollectorError):
    """A ferramenta externa recusou a operação por falta de privilégio."""

    kind = ErrorKind.PERMISSION_DENIED


class Timeout(CollectorError):
    """A chamada externa excedeu o timeout configurado."""

    kind = ErrorKind.TIMEOUT


class ParseError(CollectorError):
    """
    A saída da ferramenta externa não corresponde ao formato esperado.

    `raw_snippet` guarda um trecho curto da saída bruta para diagnóstico
    (deriva de formato entre versões da ferramenta, por exemplo).
    """

    kind = ErrorKind.PARSE_ERROR

    def __init__(self, message: str, raw_snippet: str = "") -> None:
        super().__init__(message)
        self.raw_snippet = raw_snippet[:200]


# ─── Erros do dispatcher ─────────────────────────────────────────────────────

class InterfaceUnavailable(NetPrismError):
    """A interface selecionada não existe mais no snapshot mais recente."""

    kind = ErrorKind.INTERFACE_UNAVAILABLE


class TransportError(NetPrismError):
    """Falha de transporte em uma sonda (conexão recusada, DNS, TLS...)."""

    kind = ErrorKind.TRANSPORT_ERROR

    def __init__(self, message: str, cause: str = "transport") -> None:
        super().__init__(message)
        self.cause = cause


# ─── Erros de segurança ──────────────────────────────────────────────────────

class ProtectedProcessError(NetPrismError):
    """Tentativa de encerrar um processo reservado (0, 1, 4 ou desconhecido)."""


class TerminationError(NetPrismError):
    """O encerramento delegado ao sistema operacional falhou."""
