"""
api/blueprints/snapshot.py
Blueprint de leitura do estado de rede agregado.

Endpoints:
    GET  /snapshot/              — snapshot completo (JSON)
    POST /snapshot/refresh       — coleta todos os domínios e publica
    GET  /snapshot/status        — flags por domínio + idade do snapshot
    GET  /snapshot/ports         — portas filtradas (query → FilterCriteria)
    GET  /snapshot/interfaces    — interfaces (q=, available=1)
    GET  /snapshot/routes        — rotas por métrica
    GET  /snapshot/firewall      — regras de firewall (q=)
    GET  /snapshot/containers    — redes de container
    GET  /snapshot/export/ports  — portas filtradas em texto tabulado
"""

from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request
from pydantic import ValidationError

from api.http_utils import (
    current_snapshot,
    dump,
    dump_all,
    get_service,
    run_async,
    validation_errors,
)
from core.query import (
    FilterCriteria,
    available_interfaces,
    filter_ports,
    search_firewall_rules,
    search_interfaces,
    sorted_routes,
)
from core.services.export_service import PORT_FIELDS, export, extract_fields

snapshot_bp = Blueprint("snapshot", __name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


# ── Helpers ──────────────────────────────────────────


def _criteria_from_args() -> FilterCriteria:
    """Query string → FilterCriteria (parâmetros vazios são ignorados)."""
    args = request.args
    raw = {
        "text": args.get("q"),
        "process_name": args.get("process"),
        "port": args.get("port"),
        "port_match": "prefix" if args.get("prefix", "").lower() in _TRUE_VALUES else None,
        "pid": args.get("pid"),
        "protocol": args.get("protocol", "").upper() or None,
        "direction": args.get("direction"),
        "sort_by": args.get("sort"),
        "descending": args.get("desc", "").lower() in _TRUE_VALUES,
    }
    return FilterCriteria.model_validate(
        {k: v for k, v in raw.items() if v not in (None, "")}
    )


def _status_payload(snapshot) -> dict:
    service = get_service()
    max_age = float(current_app.config.get("SNAPSHOT_MAX_AGE", 60))
    return {
        "snapshot_id": snapshot.snapshot_id,
        "captured_at": snapshot.captured_at.isoformat(),
        "degraded": snapshot.is_degraded,
        "stale": service.aggregator.is_stale(max_age),
        "domains": {
            domain.value: dump(status) for domain, status in snapshot.status.items()
        },
    }


# ── Rotas ────────────────────────────────────────────


@snapshot_bp.get("/")
def get_snapshot():
    """Snapshot corrente completo."""
    return jsonify(dump(current_snapshot()))


@snapshot_bp.post("/refresh")
def refresh():
    """Dispara um ciclo de coleta e devolve o status do novo snapshot."""
    snapshot = run_async(get_service().refresh())
    return jsonify(_status_payload(snapshot))


@snapshot_bp.get("/status")
def status():
    return jsonify(_status_payload(current_snapshot()))


@snapshot_bp.get("/ports")
def ports():
    """Portas filtradas.

    Query params:
        q, process, port, prefix (1 = prefixo), pid, protocol,
        direction, sort (port|pid|process_name|protocol), desc.
    """
    try:
        criteria = _criteria_from_args()
    except ValidationError as exc:
        return jsonify({"error": "Filtro inválido.", "details": validation_errors(exc)}), 400

    bindings = filter_ports(current_snapshot(), criteria)
    return jsonify({"ports": dump_all(bindings), "total": len(bindings)})


@snapshot_bp.get("/interfaces")
def interfaces():
    snapshot = current_snapshot()
    if request.args.get("available", "").lower() in _TRUE_VALUES:
        found = available_interfaces(snapshot)
    else:
        found = search_interfaces(snapshot, request.args.get("q"))
    return jsonify({"interfaces": dump_all(found), "total": len(found)})


@snapshot_bp.get("/routes")
def routes():
    found = sorted_routes(current_snapshot())
    return jsonify({"routes": dump_all(found), "total": len(found)})


@snapshot_bp.get("/firewall")
def firewall():
    found = search_firewall_rules(current_snapshot(), request.args.get("q"))
    return jsonify({"rules": dump_all(found), "total": len(found)})


@snapshot_bp.get("/containers")
def containers():
    found = current_snapshot().container_networks
    return jsonify({"networks": dump_all(found), "total": len(found)})


@snapshot_bp.get("/export/ports")
def export_ports():
    """Portas filtradas como texto tabulado (mesmos filtros de /ports)."""
    try:
        criteria = _criteria_from_args()
    except ValidationError as exc:
        return jsonify({"error": "Filtro inválido.", "details": validation_errors(exc)}), 400

    chunks: list[str] = []
    rows = extract_fields(filter_ports(current_snapshot(), criteria), PORT_FIELDS)
    if not export(rows, chunks.append, PORT_FIELDS):
        return jsonify({"error": "Falha na exportação."}), 500
    return Response("".join(chunks), mimetype="text/plain; charset=utf-8")
