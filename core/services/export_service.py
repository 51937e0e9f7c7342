"""
core/services/export_service.py
Exportação de registros do snapshot como texto tabulado.

O destino (arquivo, área de transferência, stdout) é um callable que recebe
o texto. Falha do destino é registrada e devolvida como False; nunca lança.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import BaseModel

from internalloggin.logger import setup_logger

logger = setup_logger(__name__)

Sink = Callable[[str], Any]

PORT_FIELDS: tuple[str, ...] = (
    "pid", "process_name", "protocol", "port", "direction", "network", "state",
)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (tuple, list)):
        return ", ".join(_as_text(v) for v in value)
    return str(value)


def extract_fields(
    records: Iterable[BaseModel], fields: Sequence[str]
) -> list[dict[str, str]]:
    """Linhas estruturadas {campo: texto} na ordem de `fields`."""
    return [
        {name: _as_text(getattr(record, name, None)) for name in fields}
        for record in records
    ]


def to_plain_text(
    rows: Sequence[dict[str, str]], fields: Optional[Sequence[str]] = None
) -> str:
    """
    Texto separado por tabulação com linha de cabeçalho.

    Tabs/quebras de linha dentro dos valores viram espaço para não quebrar
    as colunas.
    """
    if fields is None:
        fields = list(rows[0].keys()) if rows else []
    lines = ["\t".join(fields)]
    for row in rows:
        lines.append(
            "\t".join(
                row.get(name, "").replace("\t", " ").replace("\n", " ")
                for name in fields
            )
        )
    return "\n".join(lines) + "\n"


def export(
    rows: Sequence[dict[str, str]],
    sink: Sink,
    fields: Optional[Sequence[str]] = None,
) -> bool:
    """Entrega o texto ao destino. True em sucesso, False se o destino falhar."""
    text = to_plain_text(rows, fields)
    try:
        sink(text)
    except Exception as exc:  # noqa: BLE001
        logger.error("Falha ao exportar %d linhas: %s", len(rows), exc)
        return False
    logger.info("%d linhas exportadas.", len(rows))
    return True


def file_sink(path: str | Path) -> Sink:
    """Destino que grava o texto em arquivo UTF-8."""
    target = Path(path)

    def _write(text: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")

    return _write
