"""
core/config.py
Configuração do núcleo do NetPrism (independente da camada web).

A plataforma seleciona, na inicialização, o conjunto FIXO de coletores
(ver collectors/registry.py). Valores lidos de variáveis de ambiente.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path

from core.constants import (
    DEFAULT_COLLECTOR_TIMEOUT,
    DEFAULT_PING_COUNT,
    DEFAULT_PROBE_TIMEOUT,
    HTTP_BODY_SAMPLE_BYTES,
)


class Platform(str, Enum):
    """Perfil de coleta selecionado na inicialização."""

    LINUX = "linux"
    WSL = "wsl"          # Linux dentro do WSL: host = Windows via interop
    WINDOWS = "windows"  # Windows nativo: guest = distribuição WSL


def detect_platform() -> Platform:
    """Detecta o perfil pelo sistema corrente (sem executar comandos externos)."""
    if sys.platform.startswith("win"):
        return Platform.WINDOWS
    if os.getenv("WSL_DISTRO_NAME") or Path("/proc/sys/fs/binfmt_misc/WSLInterop").exists():
        return Platform.WSL
    return Platform.LINUX


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class CoreConfig:
    # ── Plataforma ────────────────────────────────────────────────────────────
    PLATFORM: str = os.getenv("NETPRISM_PLATFORM", "")

    # ── Coleta ────────────────────────────────────────────────────────────────
    COLLECTOR_TIMEOUT: float = _env_float(
        "NETPRISM_COLLECTOR_TIMEOUT", DEFAULT_COLLECTOR_TIMEOUT
    )
    SYNTHETIC_FALLBACK: bool = _env_bool("NETPRISM_SYNTHETIC_FALLBACK")

    # ── Sondas ────────────────────────────────────────────────────────────────
    PROBE_TIMEOUT: float = _env_float("NETPRISM_PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT)
    PING_COUNT: int = int(_env_float("NETPRISM_PING_COUNT", DEFAULT_PING_COUNT))
    HTTP_BODY_SAMPLE: int = int(
        _env_float("NETPRISM_HTTP_BODY_SAMPLE", HTTP_BODY_SAMPLE_BYTES)
    )

    @classmethod
    def platform(cls) -> Platform:
        """Plataforma configurada; valor inválido ou vazio cai na detecção."""
        try:
            return Platform(cls.PLATFORM.strip().lower())
        except ValueError:
            return detect_platform()
