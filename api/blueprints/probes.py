"""
api/blueprints/probes.py
Blueprint de sondas a partir de uma interface.

Endpoints:
    POST /probes/  — corpo JSON = ProbeRequest; resposta = ProbeResult
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from api.http_utils import dump, get_service, run_async, validation_errors
from core.schemas import ProbeRequest

probes_bp = Blueprint("probes", __name__)


@probes_bp.post("/")
def run_probe():
    """Executa a sonda e aguarda o resultado terminal.

    Exemplo:
        {"kind": "reachability", "target": "8.8.8.8",
         "interface_name": "eth0", "interface_origin": "host", "count": 4}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Envie um objeto JSON."}), 400
    try:
        probe_request = ProbeRequest.model_validate(payload)
    except ValidationError as exc:
        return (
            jsonify({"error": "Pedido de sonda inválido.", "details": validation_errors(exc)}),
            400,
        )

    result = run_async(get_service().probe(probe_request))
    return jsonify(dump(result))
