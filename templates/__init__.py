"""
templates/
──────────
Diretório de templates TTP usados pelos coletores para parsear saídas
textuais de ferramentas do sistema em dicionários estruturados.

Templates disponíveis:
    ip_brief_addr.ttp  — ip -br addr show  → nome, estado, endereços
    ip_brief_link.ttp  — ip -br link show  → nome, estado, MAC, flags

Uso:
    from templates import TEMPLATES_DIR
    template_path = TEMPLATES_DIR / "ip_brief_link.ttp"
"""

from pathlib import Path

TEMPLATES_DIR: Path = Path(__file__).parent

__all__ = ["TEMPLATES_DIR"]
