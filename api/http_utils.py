"""
api/http_utils.py
Utilitários HTTP exclusivos da camada web Flask.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable, TypeVar

from flask import current_app
from pydantic import BaseModel, ValidationError

from core.services.state_service import NetworkStateService

T = TypeVar("T")

SERVICE_KEY = "netprism"


def get_service() -> NetworkStateService:
    """Fachada registrada pela app factory."""
    return current_app.extensions[SERVICE_KEY]


def run_async(awaitable: Awaitable[T]) -> T:
    """Executa uma corrotina do núcleo em um event loop próprio da requisição."""

    async def _await() -> T:
        return await awaitable

    return asyncio.run(_await())


def current_snapshot():
    """Snapshot corrente; faz o primeiro refresh se configurado e ainda vazio."""
    service = get_service()
    snapshot = service.current()
    if snapshot.snapshot_id == 0 and current_app.config.get("REFRESH_ON_FIRST_READ"):
        snapshot = run_async(service.refresh())
    return snapshot


def dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


def dump_all(models: Iterable[BaseModel]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


def validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Erros do Pydantic em formato JSON simples (campo + mensagem)."""
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
