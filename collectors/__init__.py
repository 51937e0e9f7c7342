"""
collectors/
Collector Adapters do NetPrism — um por domínio e plataforma.

Contém:
- interfaces.py : host/guest via iproute2, wsl.exe ou PowerShell.
- ports.py      : ss (Linux) / Get-NetTCPConnection + netstat (Windows).
- firewall.py   : iptables -S / Get-NetFirewallRule.
- routing.py    : ip route / Get-NetRoute.
- docker.py     : redes e endpoints de containers via docker CLI.
- registry.py   : conjunto fixo de coletores por plataforma.
"""

from .registry import build_collectors

__all__ = ["build_collectors"]
