"""
core/services/ping_service.py
Sonda de alcançabilidade via binário `ping` do sistema.

Sem pilha ICMP própria: montamos o argv, executamos com prazo total
(count × timeout + folga) e interpretamos a saída, inclusive parcial
quando o processo precisa ser morto no prazo.
"""

from __future__ import annotations

import asyncio
import errno
import math
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from core.constants import PING_GRACE_SECONDS, PING_INTERVAL_SECONDS
from core.errors import PermissionDenied, Unavailable
from core.schemas import PingAttempt

# ── POSIX (iputils) ──────────────────────────────────────────
_RE_POSIX_REPLY = re.compile(r"icmp_seq=(\d+).*?time[=<]\s*([\d.]+)\s*ms")
_RE_POSIX_UNREACHABLE = re.compile(r"icmp_seq=(\d+)\s+(.*unreachable.*)", re.IGNORECASE)

# ── Windows ──────────────────────────────────────────────────
_RE_WIN_REPLY_TIME = re.compile(r"time[=<]\s*(\d+)\s*ms", re.IGNORECASE)

_DNS_MARKERS = (
    "name or service not known",
    "temporary failure in name resolution",
    "unknown host",
    "no address associated with hostname",
    "could not find host",
)
_BIND_MARKERS = (
    "cannot assign requested address",
    "bind:",
    "unknown iface",
    "invalid source address",
    "not valid in its context",
)
_PERMISSION_MARKERS = (
    "socket: operation not permitted",
    "socket: permission denied",
    "access denied",
)


@dataclass
class PingRun:
    """Saída (stdout + stderr) de uma execução do ping."""

    output: str
    returncode: Optional[int]
    killed: bool = False


@dataclass
class PingReport:
    requested: int
    attempts: list[PingAttempt] = field(default_factory=list)
    unreachable: bool = False
    dns_failure: bool = False
    bind_failure: bool = False
    permission_denied: bool = False

    @property
    def received(self) -> int:
        return sum(1 for a in self.attempts if a.success)

    @property
    def loss_percent(self) -> float:
        if self.requested <= 0:
            return 0.0
        return round((self.requested - self.received) / self.requested * 100, 2)

    def _rtts(self) -> list[float]:
        return [a.rtt_ms for a in self.attempts if a.success and a.rtt_ms is not None]

    @property
    def rtt_min(self) -> Optional[float]:
        rtts = self._rtts()
        return min(rtts) if rtts else None

    @property
    def rtt_max(self) -> Optional[float]:
        rtts = self._rtts()
        return max(rtts) if rtts else None

    @property
    def rtt_avg(self) -> Optional[float]:
        rtts = self._rtts()
        return round(sum(rtts) / len(rtts), 3) if rtts else None


# ─── argv ────────────────────────────────────────────────────────────────────


def build_ping_argv(
    target: str,
    count: int,
    timeout: float,
    source_address: Optional[str],
    windows: bool = False,
) -> list[str]:
    """
    Monta o comando ping com contagem, espera por eco e endereço de origem.

        POSIX   : ping -n -c N -W T -I <addr> <alvo>
        Windows : ping -n N -w <ms> -S <addr> <alvo>
    """
    if windows:
        argv = ["ping", "-n", str(count), "-w", str(int(timeout * 1000))]
        if source_address:
            argv += ["-S", source_address]
    else:
        # -W em segundos inteiros nas versões antigas do iputils
        argv = ["ping", "-n", "-c", str(count), "-W", str(max(1, math.ceil(timeout)))]
        if source_address:
            argv += ["-I", source_address]
    argv.append(target)
    return argv


def ping_deadline(count: int, timeout: float, windows: bool = False) -> float:
    """
    Prazo total (s) antes de matar o ping.

    O ping envia um eco por PING_INTERVAL_SECONDS e só espera `timeout` pela
    resposta do último. No POSIX a espera é arredondada como no `-W`; no
    Windows um eco perdido segura o próximo envio até o timeout expirar.
    """
    if windows:
        wait = timeout
        slot = max(PING_INTERVAL_SECONDS, timeout)
    else:
        wait = max(1, math.ceil(timeout))
        slot = PING_INTERVAL_SECONDS
    return (count - 1) * slot + wait + PING_GRACE_SECONDS


# ─── Parsing ─────────────────────────────────────────────────────────────────


def _flag_failures(report: PingReport, lowered: str) -> None:
    report.dns_failure = any(m in lowered for m in _DNS_MARKERS)
    report.bind_failure = any(m in lowered for m in _BIND_MARKERS)
    report.permission_denied = any(m in lowered for m in _PERMISSION_MARKERS)


def _parse_posix(output: str, count: int) -> PingReport:
    report = PingReport(requested=count)
    replies: dict[int, float] = {}
    failures: dict[int, str] = {}

    for line in output.splitlines():
        reply = _RE_POSIX_REPLY.search(line)
        if reply:
            # Primeira resposta vence; (DUP!) não conta duas vezes
            replies.setdefault(int(reply.group(1)), float(reply.group(2)))
            continue
        unreachable = _RE_POSIX_UNREACHABLE.search(line)
        if unreachable:
            failures.setdefault(int(unreachable.group(1)), unreachable.group(2).strip())
            report.unreachable = True

    for seq in range(1, count + 1):
        if seq in replies:
            report.attempts.append(PingAttempt(sequence=seq, success=True, rtt_ms=replies[seq]))
        else:
            report.attempts.append(
                PingAttempt(sequence=seq, success=False, detail=failures.get(seq, "no reply"))
            )
    _flag_failures(report, output.lower())
    return report


def _parse_windows(output: str, count: int) -> PingReport:
    report = PingReport(requested=count)
    seq = 0
    for line in output.splitlines():
        text = line.strip()
        lowered = text.lower()
        if seq >= count:
            break
        if lowered.startswith("reply from"):
            seq += 1
            if "unreachable" in lowered:
                report.unreachable = True
                report.attempts.append(PingAttempt(sequence=seq, success=False, detail=text))
                continue
            match = _RE_WIN_REPLY_TIME.search(text)
            # 'time<1ms' é registrado como o limite superior (1 ms)
            rtt = float(match.group(1)) if match else None
            report.attempts.append(PingAttempt(sequence=seq, success=True, rtt_ms=rtt))
        elif lowered.startswith("request timed out") or "general failure" in lowered:
            seq += 1
            report.attempts.append(PingAttempt(sequence=seq, success=False, detail=text))
        elif "unreachable" in lowered:
            seq += 1
            report.unreachable = True
            report.attempts.append(PingAttempt(sequence=seq, success=False, detail=text))

    while seq < count:
        seq += 1
        report.attempts.append(PingAttempt(sequence=seq, success=False, detail="no reply"))
    _flag_failures(report, output.lower())
    return report


def parse_ping_output(output: str, count: int, windows: bool = False) -> PingReport:
    """
    Converte a saída (possivelmente parcial) do ping em tentativas individuais.

    Ecos sem linha correspondente contam como perdidos: perda = perdidos /
    solicitados × 100.
    """
    if windows:
        return _parse_windows(output, count)
    return _parse_posix(output, count)


# ─── Execução ────────────────────────────────────────────────────────────────


async def run_ping(argv: Sequence[str], deadline: float) -> PingRun:
    """
    Executa o ping e coleta a saída até o fim ou até `deadline` segundos.

    No prazo (ou em cancelamento) o processo é morto e colhido; a saída lida
    até ali é preservada.

    Raises:
        Unavailable:      Binário `ping` ausente.
        PermissionDenied: Sem permissão para executar.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError as exc:
        raise Unavailable(f"Comando não encontrado: {argv[0]}") from exc
    except PermissionError as exc:
        raise PermissionDenied(f"Sem permissão para executar {argv[0]}") from exc
    except OSError as exc:
        if exc.errno in (errno.EACCES, errno.EPERM):
            raise PermissionDenied(f"Sem permissão para executar {argv[0]}") from exc
        raise Unavailable(f"Falha ao iniciar {argv[0]}: {exc}") from exc

    chunks: list[bytes] = []

    async def _drain() -> None:
        assert proc.stdout is not None
        while True:
            chunk = await proc.stdout.read(4096)
            if not chunk:
                break
            chunks.append(chunk)
        await proc.wait()

    killed = False
    try:
        await asyncio.wait_for(_drain(), timeout=deadline)
    except asyncio.TimeoutError:
        killed = True
    finally:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    return PingRun(
        output=b"".join(chunks).decode("utf-8", errors="replace"),
        returncode=proc.returncode,
        killed=killed,
    )
