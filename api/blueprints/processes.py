"""
api/blueprints/processes.py
Blueprint de encerramento de processos donos de portas.

Endpoints:
    POST /processes/<pid>/terminate  — 403 se o PID for protegido
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from api.http_utils import get_service
from core.errors import ProtectedProcessError, TerminationError

processes_bp = Blueprint("processes", __name__)


@processes_bp.post("/<int:pid>/terminate")
def terminate(pid: int):
    try:
        get_service().terminate_process(pid)
    except ProtectedProcessError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 403
    except TerminationError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 500
    return jsonify({"ok": True, "pid": pid})
