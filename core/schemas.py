"""
core/schemas.py
───────────────
Define os modelos Pydantic do NetPrism — o esquema unificado que todos os
coletores preenchem e que o dispatcher de sondas consome/produz.

Design Decisions
────────────────
1. Hierarquia:
       NetworkInterface / PortBinding / FirewallRule / Route / ContainerNetwork
           →  DomainRecords (payload de um domínio)
           →  Snapshot (Aggregate Root, imutável)

   O Snapshot é publicado inteiro pelo Aggregator e nunca é alterado depois.
   Por isso todos os modelos de snapshot usam `frozen=True` e coleções em
   `tuple` — um leitor concorrente nunca enxerga um objeto pela metade.

2. ConfigDict(str_strip_whitespace=True):
   Ferramentas de linha de comando (ip, ss, netstat, PowerShell) devolvem
   colunas com espaços extras; a normalização automática evita chaves
   duplicadas "fantasmas" como 'eth0 ' vs 'eth0'.

3. Flag `synthetic`:
   Qualquer dado de exemplo (placeholder de UI) carrega `synthetic=True`,
   tanto no registro quanto no DomainRecords, para que a apresentação
   distinga dado real de dado fabricado.

4. Expressões de filtro de firewall são strings opacas:
   Não há parsing semântico de '10.0.0.0/8' ou '1024-65535' — o NetPrism
   apenas exibe o que a ferramenta de firewall reportou.
"""

from __future__ import annotations

import ipaddress
import re
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from core.constants import (
    DEFAULT_PING_COUNT,
    DEFAULT_PROBE_TIMEOUT,
    HTTP_METHODS,
    MAX_PING_COUNT,
    PORT_MAX,
    PORT_MIN,
)
from core.errors import ErrorKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Enums ───────────────────────────────────────────────────────────────────

class Domain(str, Enum):
    """
    Fonte de dados de rede. Cada domínio tem exatamente um coletor por ciclo
    de refresh e um DomainStatus próprio no Snapshot.
    """

    HOST = "host"            # interfaces do sistema operacional hospedeiro
    GUEST = "guest"          # interfaces da camada de virtualização (ex: WSL)
    CONTAINER = "container"  # redes do runtime de containers (Docker)
    PORTS = "ports"          # bindings de porta / processos
    FIREWALL = "firewall"    # regras de firewall
    ROUTES = "routes"        # tabela de roteamento


class InterfaceOrigin(str, Enum):
    """Domínio de origem de uma interface de rede."""

    HOST = "host"
    GUEST = "guest"
    CONTAINER = "container"


class IPVersion(str, Enum):
    V4 = "v4"
    V6 = "v6"


class Transport(str, Enum):
    TCP = "TCP"
    UDP = "UDP"


class PortDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    LISTENING = "listening"


class RuleDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class RuleAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"


class ProbeKind(str, Enum):
    REACHABILITY = "reachability"
    HTTP = "http"


class ProbeState(str, Enum):
    """Máquina de estados de uma sonda: Idle → Binding → InFlight → terminal."""

    IDLE = "idle"
    BINDING = "binding"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProbeState.COMPLETED, ProbeState.TIMED_OUT, ProbeState.FAILED)


class ProbeOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    ERROR = "error"


# ─── Modelo 1: Endereço IP ───────────────────────────────────────────────────

class IPAddress(BaseModel):
    """
    Endereço IP com marca de versão.

    Aceita string direta (com ou sem prefixo) para facilitar os parsers:

        IPAddress.model_validate("172.20.11.89/20")
        IPAddress.model_validate("fe80::215:5dff:fef9:e225/64")
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    address: str = Field(..., description="Endereço sem prefixo (ex: '10.0.0.2').")
    prefix_len: Optional[int] = Field(default=None, ge=0, le=128)
    version: IPVersion = Field(default=IPVersion.V4)

    @model_validator(mode="before")
    @classmethod
    def _from_cidr_string(cls, data: object) -> object:
        """Converte 'ip/prefixo' em dict e deriva a versão a partir do endereço."""
        if isinstance(data, str):
            data = {"address": data}
        if not isinstance(data, dict):
            return data

        data = dict(data)
        raw = str(data.get("address", "")).strip()
        if "/" in raw:
            raw, prefix = raw.split("/", 1)
            data.setdefault("prefix_len", int(prefix))
        try:
            parsed = ipaddress.ip_address(raw)
        except ValueError as exc:
            raise ValueError(f"Endereço IP inválido: '{raw}'.") from exc
        data["address"] = raw
        data["version"] = IPVersion.V6 if parsed.version == 6 else IPVersion.V4
        return data

    @property
    def is_link_local(self) -> bool:
        return ipaddress.ip_address(self.address).is_link_local

    def __str__(self) -> str:
        if self.prefix_len is None:
            return self.address
        return f"{self.address}/{self.prefix_len}"


# ─── Modelo 2: Interface de Rede ─────────────────────────────────────────────

class NetworkInterface(BaseModel):
    """
    Interface de rede de qualquer domínio (host, guest ou container).

    Identidade: o par (name, origin) é único dentro de um Snapshot.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, description="Nome da interface (ex: 'eth0', 'Wi-Fi').")
    origin: InterfaceOrigin = Field(..., description="Domínio de origem da interface.")
    addresses: tuple[IPAddress, ...] = Field(default=())
    mac_address: Optional[str] = Field(
        default=None,
        description="MAC em XX:XX:XX:XX:XX:XX (maiúsculo), normalizado pelo validador.",
    )
    is_up: bool = Field(default=False)
    is_loopback: bool = Field(default=False)
    synthetic: bool = Field(default=False, description="True para dado de exemplo.")

    @field_validator("mac_address", mode="before")
    @classmethod
    def _normalize_mac_address(cls, value: Optional[str]) -> Optional[str]:
        """
        Normaliza o MAC para XX:XX:XX:XX:XX:XX.

        Aceita '00:15:5d:f9:e2:25' (Linux), '00-15-5D-F9-E2-25' (Windows)
        e '00155DF9E225'.

        Raises:
            ValueError: Se o valor não for um MAC de 6 octetos.
        """
        if value is None or value == "":
            return None

        cleaned = re.sub(r"[:\-\.]", "", value).upper()
        if not re.fullmatch(r"[0-9A-F]{12}", cleaned):
            raise ValueError(f"Endereço MAC inválido: '{value}'.")
        return ":".join(cleaned[i:i + 2] for i in range(0, 12, 2))

    @property
    def key(self) -> tuple[str, InterfaceOrigin]:
        return (self.name, self.origin)

    @property
    def ipv4_addresses(self) -> tuple[str, ...]:
        return tuple(a.address for a in self.addresses if a.version == IPVersion.V4)

    @property
    def ipv6_addresses(self) -> tuple[str, ...]:
        return tuple(a.address for a in self.addresses if a.version == IPVersion.V6)


# ─── Modelo 3: Binding de Porta ──────────────────────────────────────────────

class PortBinding(BaseModel):
    """
    Socket ativo associado a um processo.

    `pid` None ou 0 significa processo desconhecido/reservado — nunca é alvo
    de encerramento (ver core/services/process_guard.py).
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    pid: Optional[int] = Field(default=None, ge=0)
    process_name: str = Field(default="N/A")
    protocol: Transport
    port: int = Field(..., ge=PORT_MIN, le=PORT_MAX)
    direction: PortDirection = Field(default=PortDirection.LISTENING)
    local_address: str = Field(default="*")
    remote_address: Optional[str] = Field(default=None)
    network: str = Field(default="", description="Rótulo 'ip:porta' exibido pela ferramenta.")
    state: str = Field(default="")
    synthetic: bool = Field(default=False)

    @field_validator("protocol", mode="before")
    @classmethod
    def _normalize_protocol(cls, value: object) -> object:
        # 'tcp6' / 'udp6' (netstat, ss) viram TCP / UDP
        if isinstance(value, str):
            return value.strip().upper().rstrip("6")
        return value


# ─── Modelo 4: Regra de Firewall ─────────────────────────────────────────────

class FirewallRule(BaseModel):
    """
    Regra de firewall do host ou do guest.

    Endereços e portas são expressões opacas ('Any', '10.0.0.0/8', '1024-65535').
    `raw` guarda a linha original da ferramenta quando disponível.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    enabled: bool = Field(default=True)
    direction: RuleDirection = Field(default=RuleDirection.INBOUND)
    action: RuleAction = Field(default=RuleAction.ALLOW)
    protocol: str = Field(default="any")
    local_address: str = Field(default="any")
    remote_address: str = Field(default="any")
    local_port: str = Field(default="any")
    remote_port: str = Field(default="any")
    chain: Optional[str] = Field(default=None)
    raw: Optional[str] = Field(default=None)
    synthetic: bool = Field(default=False)


# ─── Modelo 5: Rota ──────────────────────────────────────────────────────────

class Route(BaseModel):
    """
    Entrada da tabela de roteamento. Ordenação padrão: métrica ascendente.

    >>> Route(destination="default", gateway="172.24.160.1", interface="eth0", metric=100).destination
    '0.0.0.0/0'
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    destination: str = Field(..., description="Prefixo de destino em CIDR.")
    gateway: Optional[str] = Field(default=None, description="Próximo salto; None = on-link.")
    interface: str = Field(default="")
    metric: int = Field(default=0, ge=0)
    protocol: Optional[str] = Field(default=None)
    scope: Optional[str] = Field(default=None)
    synthetic: bool = Field(default=False)

    @model_validator(mode="before")
    @classmethod
    def _normalize_default_route(cls, data: object) -> object:
        """'default' → '0.0.0.0/0' (ou '::/0' quando o gateway é IPv6)."""
        if not isinstance(data, dict):
            return data
        if str(data.get("destination", "")).strip().lower() == "default":
            data = dict(data)
            gateway = data.get("gateway") or ""
            data["destination"] = "::/0" if ":" in gateway else "0.0.0.0/0"
        return data


# ─── Modelo 6: Redes de Container ────────────────────────────────────────────

class ContainerSummary(BaseModel):
    """Endpoint de um container conectado a uma rede."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    container_id: str
    name: str = Field(default="")
    ipv4_address: Optional[str] = Field(default=None)
    ipv6_address: Optional[str] = Field(default=None)
    mac_address: Optional[str] = Field(default=None)


class ContainerNetwork(BaseModel):
    """Rede do runtime de containers com IPAM e containers anexados."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    network_id: str
    name: str
    driver: str = Field(default="unknown")
    scope: str = Field(default="unknown")
    subnet: Optional[str] = Field(default=None)
    gateway: Optional[str] = Field(default=None)
    containers: tuple[ContainerSummary, ...] = Field(default=())
    synthetic: bool = Field(default=False)


# ─── Payload de domínio e status ─────────────────────────────────────────────

_RECORD_FIELDS: tuple[str, ...] = (
    "interfaces", "ports", "firewall_rules", "routes", "container_networks",
)


class DomainRecords(BaseModel):
    """Registros normalizados produzidos por um coletor em um ciclo."""

    model_config = ConfigDict(frozen=True)

    interfaces: tuple[NetworkInterface, ...] = Field(default=())
    ports: tuple[PortBinding, ...] = Field(default=())
    firewall_rules: tuple[FirewallRule, ...] = Field(default=())
    routes: tuple[Route, ...] = Field(default=())
    container_networks: tuple[ContainerNetwork, ...] = Field(default=())
    synthetic: bool = Field(default=False)

    def as_synthetic(self) -> "DomainRecords":
        """Cópia com o payload e cada registro marcados synthetic=True."""
        update: dict = {"synthetic": True}
        for name in _RECORD_FIELDS:
            update[name] = tuple(
                record.model_copy(update={"synthetic": True})
                for record in getattr(self, name)
            )
        return self.model_copy(update=update)

    @property
    def is_empty(self) -> bool:
        return not (
            self.interfaces or self.ports or self.firewall_rules
            or self.routes or self.container_networks
        )

    def count(self) -> int:
        return (
            len(self.interfaces) + len(self.ports) + len(self.firewall_rules)
            + len(self.routes) + len(self.container_networks)
        )


class DomainStatus(BaseModel):
    """
    Flag de sucesso/falha de um domínio no Snapshot.

    ok=False + stale=True   → coleta falhou, dados do snapshot anterior mantidos.
    ok=False + stale=False  → coleta falhou e não havia dado anterior (vazio).
    """

    model_config = ConfigDict(frozen=True)

    domain: Domain
    ok: bool = Field(default=False)
    stale: bool = Field(default=False)
    synthetic: bool = Field(default=False)
    error_kind: Optional[ErrorKind] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    raw_snippet: Optional[str] = Field(default=None)
    collected_at: Optional[datetime] = Field(
        default=None,
        description="Momento em que os dados VISÍVEIS foram coletados.",
    )
    duration_ms: Optional[float] = Field(default=None, ge=0)


# ─── Modelo Raiz: Snapshot (Aggregate Root) ──────────────────────────────────

class Snapshot(BaseModel):
    """
    Captura imutável e completa de todos os domínios em um instante.

    Criado por um ciclo de agregação, publicado por troca atômica de
    referência e substituído (nunca alterado) pelo próximo ciclo.

    >>> Snapshot.empty().interfaces
    ()
    """

    model_config = ConfigDict(frozen=True)

    snapshot_id: int = Field(default=0, ge=0, description="Geração monotônica do cache.")
    captured_at: datetime = Field(default_factory=_utcnow)
    records: Mapping[Domain, DomainRecords] = Field(default_factory=dict, validate_default=True)
    status: Mapping[Domain, DomainStatus] = Field(default_factory=dict, validate_default=True)

    @field_validator("records", "status", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping) -> Mapping:
        # frozen=True só bloqueia atribuição; os mapas também não podem mudar
        return MappingProxyType(dict(value))

    @field_serializer("records", "status")
    def _as_dict(self, value: Mapping) -> dict:
        return dict(value)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def _collect(self, attr: str) -> tuple:
        items: list = []
        for domain in Domain:
            records = self.records.get(domain)
            if records is not None:
                items.extend(getattr(records, attr))
        return tuple(items)

    @property
    def interfaces(self) -> tuple[NetworkInterface, ...]:
        return self._collect("interfaces")

    @property
    def ports(self) -> tuple[PortBinding, ...]:
        return self._collect("ports")

    @property
    def firewall_rules(self) -> tuple[FirewallRule, ...]:
        return self._collect("firewall_rules")

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._collect("routes")

    @property
    def container_networks(self) -> tuple[ContainerNetwork, ...]:
        return self._collect("container_networks")

    @property
    def is_degraded(self) -> bool:
        """True se qualquer domínio falhou no último ciclo."""
        return any(not s.ok for s in self.status.values())

    def domain_records(self, domain: Domain) -> DomainRecords:
        return self.records.get(domain, DomainRecords())

    def interface(self, name: str, origin: InterfaceOrigin) -> Optional[NetworkInterface]:
        for iface in self.interfaces:
            if iface.name == name and iface.origin == origin:
                return iface
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# Modelos de Sondas (não fazem parte do Snapshot)
# ═══════════════════════════════════════════════════════════════════════════════


class ProbeRequest(BaseModel):
    """
    Pedido de sonda a partir de uma interface selecionada.

    `timeout` é por tentativa: o eco ICMP (ping -W) ou a troca HTTP inteira.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    kind: ProbeKind
    target: str = Field(..., min_length=1, description="IP, hostname ou URL (HTTP).")
    interface_name: str = Field(..., min_length=1)
    interface_origin: InterfaceOrigin = Field(default=InterfaceOrigin.HOST)
    source_address: Optional[str] = Field(default=None)
    timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0, le=300)
    count: int = Field(default=DEFAULT_PING_COUNT, ge=1, le=MAX_PING_COUNT)
    method: str = Field(default="GET")
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body: Optional[str] = Field(default=None)

    @field_validator("method", mode="before")
    @classmethod
    def _validate_method(cls, value: object) -> str:
        method = str(value or "GET").strip().upper()
        if method not in HTTP_METHODS:
            raise ValueError(
                f"Método HTTP não suportado: '{method}'. Use um de {', '.join(HTTP_METHODS)}."
            )
        return method

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_as_pairs(cls, value: object) -> object:
        # Aceita dict simples vindo de JSON, preservando a ordem de inserção
        if isinstance(value, dict):
            return list(value.items())
        return value


class PingAttempt(BaseModel):
    """Resultado de um eco individual."""

    sequence: int = Field(..., ge=1)
    success: bool
    rtt_ms: Optional[float] = Field(default=None, ge=0)
    detail: str = Field(default="")


class HttpCapture(BaseModel):
    """Resposta HTTP capturada (cabeçalhos ordenados, duplicatas preservadas)."""

    status_code: int
    http_version: str = Field(default="")
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body_sample: str = Field(default="")
    body_truncated: bool = Field(default=False)


class ProbeResult(BaseModel):
    """
    Resultado terminal de uma sonda. Pertence ao chamador; nunca é persistido
    no Snapshot.
    """

    kind: ProbeKind
    target: str
    interface_name: str
    interface_origin: InterfaceOrigin
    source_address: Optional[str] = Field(default=None)
    state: ProbeState
    outcome: ProbeOutcome
    error_kind: Optional[ErrorKind] = Field(default=None)
    cause: Optional[str] = Field(default=None, description="Tag específica da causa da falha.")
    detail: str = Field(default="", description="Saída textual bruta.")
    duration_ms: float = Field(default=0.0, ge=0)
    started_at: datetime = Field(default_factory=_utcnow)

    # ── Reachability ─────────────────────────────────────────────────────────
    attempts: list[PingAttempt] = Field(default_factory=list)
    loss_percent: Optional[float] = Field(default=None, ge=0, le=100)
    rtt_min_ms: Optional[float] = Field(default=None)
    rtt_avg_ms: Optional[float] = Field(default=None)
    rtt_max_ms: Optional[float] = Field(default=None)

    # ── HTTP ─────────────────────────────────────────────────────────────────
    http: Optional[HttpCapture] = Field(default=None)
