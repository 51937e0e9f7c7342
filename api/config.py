"""
api/config.py
Classes de configuração Flask por ambiente.
"""

import os


class BaseConfig:
    SECRET_KEY: str = os.getenv(
        "FLASK_SECRET_KEY", "dev-secret-change-in-prod"
    )

    # Idade máxima (s) do snapshot antes de /snapshot/status marcá-lo como velho
    SNAPSHOT_MAX_AGE: float = float(
        os.getenv("NETPRISM_SNAPSHOT_MAX_AGE", 60)
    )

    # Faz um refresh na primeira leitura se ainda não houver snapshot
    REFRESH_ON_FIRST_READ: bool = True


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True
    TESTING: bool = False


class ProductionConfig(BaseConfig):
    DEBUG: bool = False
    TESTING: bool = False


class TestingConfig(BaseConfig):
    TESTING: bool = True
    REFRESH_ON_FIRST_READ: bool = False
