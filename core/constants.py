"""
core/constants.py
Constantes de domínio do NetPrism.

Single source of truth para limites de protocolo, processos protegidos,
padrões de sondas e dados de exemplo (sintéticos).
"""

from __future__ import annotations

# ── Limites de protocolo ─────────────────────────────────────
PORT_MIN: int = 0
PORT_MAX: int = 65535

# ── PIDs que nunca podem ser alvo de encerramento ────────────
# 0 = desconhecido/idle, 1 = init/systemd, 4 = System (Windows)
PROTECTED_PIDS: frozenset[int] = frozenset({0, 1, 4})

# ── Endereços curinga em bindings de porta ───────────────────
WILDCARD_ADDRESSES: frozenset[str] = frozenset({"0.0.0.0", "::", "*", "[::]"})

# ── Sondas ───────────────────────────────────────────────────
DEFAULT_PING_COUNT: int = 4
MAX_PING_COUNT: int = 100
DEFAULT_PROBE_TIMEOUT: float = 5.0
# Intervalo entre ecos do ping do sistema (iputils e Windows)
PING_INTERVAL_SECONDS: float = 1.0
# Folga sobre a duração esperada do ping antes de matar o processo
PING_GRACE_SECONDS: float = 2.0
HTTP_BODY_SAMPLE_BYTES: int = 4096
HTTP_METHODS: tuple[str, ...] = (
    "GET", "POST", "PUT", "DELETE", "HEAD", "PATCH", "OPTIONS",
)

# ── Coleta ───────────────────────────────────────────────────
DEFAULT_COLLECTOR_TIMEOUT: float = 5.0
# Folga do Aggregator sobre o timeout do coletor (reap do subprocesso)
COLLECTOR_GRACE_SECONDS: float = 1.0
RAW_SNIPPET_CHARS: int = 200

# ── Mapeamento AddressFamily do PowerShell ───────────────────
PS_ADDRESS_FAMILY_V4: int = 2
PS_ADDRESS_FAMILY_V6: int = 23


# ═══════════════════════════════════════════════════════════════
# Dados sintéticos (placeholders de UI)
# Só são usados quando o coletor é criado com synthetic_fallback=True
# e SEMPRE chegam marcados com synthetic=True.
# ═══════════════════════════════════════════════════════════════

SAMPLE_CONTAINER_NETWORKS: tuple[dict, ...] = (
    {"network_id": "sample-bridge", "name": "bridge", "driver": "bridge",
     "scope": "local", "subnet": "172.17.0.0/16", "gateway": "172.17.0.1"},
    {"network_id": "sample-host", "name": "host", "driver": "host",
     "scope": "local"},
    {"network_id": "sample-none", "name": "none", "driver": "null",
     "scope": "local"},
)

SAMPLE_ROUTES: tuple[dict, ...] = (
    {"destination": "0.0.0.0/0", "gateway": "192.168.1.1",
     "interface": "eth0", "metric": 100},
    {"destination": "192.168.1.0/24", "gateway": None,
     "interface": "eth0", "metric": 100},
    {"destination": "127.0.0.0/8", "gateway": None,
     "interface": "lo", "metric": 256},
)

SAMPLE_FIREWALL_RULES: tuple[dict, ...] = (
    {"name": "Allow Loopback", "enabled": True, "direction": "inbound",
     "action": "allow", "protocol": "any", "local_address": "127.0.0.0/8"},
    {"name": "Allow SSH", "enabled": True, "direction": "inbound",
     "action": "allow", "protocol": "tcp", "local_port": "22"},
    {"name": "Block All", "enabled": True, "direction": "inbound",
     "action": "block", "protocol": "any"},
)
