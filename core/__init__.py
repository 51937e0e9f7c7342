"""
core/
Núcleo do NetPrism.

Contém:
- schemas.py        : Modelos Pydantic do Snapshot e das sondas.
- errors.py         : Taxonomia de erros (ErrorKind + exceções tipadas).
- base_collector.py : Contrato abstrato dos Collector Adapters.
- aggregator.py     : Fan-out de coleta, fallback por domínio e publicação atômica.
- query.py          : Consultas puras sobre um Snapshot.
- config.py         : Plataforma e parâmetros lidos do ambiente.
"""

from .aggregator import Aggregator
from .errors import ErrorKind, NetPrismError
from .query import FilterCriteria, filter_ports
from .schemas import (
    Domain,
    NetworkInterface,
    PortBinding,
    ProbeRequest,
    ProbeResult,
    Snapshot,
)

__all__ = [
    "Aggregator",
    "Domain",
    "ErrorKind",
    "FilterCriteria",
    "NetPrismError",
    "NetworkInterface",
    "PortBinding",
    "ProbeRequest",
    "ProbeResult",
    "Snapshot",
    "filter_ports",
]
