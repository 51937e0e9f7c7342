"""
core/services/process_guard.py
Guarda de encerramento de processos.

PIDs reservados (None, 0, 1, 4 e não positivos) são recusados ANTES de
qualquer chamada externa. O encerramento real é delegado a um callable
injetável (padrão: `taskkill` no Windows, `kill -TERM` nos demais).
"""

from __future__ import annotations

import subprocess
import sys
from typing import Callable, Optional

from core.constants import PROTECTED_PIDS
from core.errors import ProtectedProcessError, TerminationError
from internalloggin.logger import setup_logger

logger = setup_logger(__name__)

TerminateDelegate = Callable[[int], None]

_TERMINATE_TIMEOUT: float = 5.0


def is_protected(pid: Optional[int]) -> bool:
    return pid is None or pid <= 0 or pid in PROTECTED_PIDS


def system_terminate(pid: int, timeout: float = _TERMINATE_TIMEOUT) -> None:
    """
    Encerra o processo pelo utilitário do sistema.

    Raises:
        TerminationError: Utilitário ausente, timeout ou código de saída != 0.
    """
    if sys.platform.startswith("win"):
        argv = ["taskkill", "/PID", str(pid), "/F"]
    else:
        argv = ["kill", "-TERM", str(pid)]
    try:
        result = subprocess.run(
            argv,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise TerminationError(f"Falha ao executar {argv[0]}: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise TerminationError(f"{argv[0]} PID {pid} → código {result.returncode}: {detail}")


class ProcessGuard:
    def __init__(self, delegate: TerminateDelegate = system_terminate) -> None:
        self._delegate = delegate

    def terminate(self, pid: Optional[int]) -> None:
        """
        Encerra `pid` após checar a lista de processos protegidos.

        Raises:
            ProtectedProcessError: PID reservado/desconhecido (delegate não é chamado).
            TerminationError:      Falha reportada pelo delegate.
        """
        if is_protected(pid):
            logger.warning("Encerramento recusado: PID %s é protegido.", pid)
            raise ProtectedProcessError(f"PID {pid} é protegido e não pode ser encerrado.")
        logger.info("Encerrando PID %d.", pid)
        self._delegate(pid)
