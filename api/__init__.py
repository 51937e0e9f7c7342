"""
api/__init__.py
App Factory da API HTTP do NetPrism (Flask).

Uso:
    from api import create_app
    app = create_app()
"""

from __future__ import annotations

from typing import Optional

from flask import Flask, redirect, url_for

from api.blueprints.health import health_bp
from api.blueprints.probes import probes_bp
from api.blueprints.processes import processes_bp
from api.blueprints.snapshot import snapshot_bp
from api.config import DevelopmentConfig
from api.http_utils import SERVICE_KEY
from core.services.state_service import NetworkStateService


def create_app(
    config_class=DevelopmentConfig,
    service: Optional[NetworkStateService] = None,
) -> Flask:
    """Cria e configura a instância Flask.

    `service` permite injetar uma fachada pronta (testes); por padrão ela é
    montada a partir de CoreConfig.
    """

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.extensions[SERVICE_KEY] = service or NetworkStateService.from_config()

    # ── Blueprints ────────────────────────────────────
    app.register_blueprint(
        health_bp, url_prefix="/health"
    )
    app.register_blueprint(
        snapshot_bp, url_prefix="/snapshot"
    )
    app.register_blueprint(
        probes_bp, url_prefix="/probes"
    )
    app.register_blueprint(
        processes_bp, url_prefix="/processes"
    )

    # ── Rota raiz ─────────────────────────────────────
    @app.get("/")
    def index():
        return redirect(url_for("snapshot.status"))

    return app
