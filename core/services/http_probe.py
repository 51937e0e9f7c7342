"""
core/services/http_probe.py
───────────────────────────
Sonda HTTP-sobre-TCP a partir de um endereço de origem específico.

Design Decisions
────────────────
1. httpx com transporte injetável:
   Em produção `httpx.AsyncHTTPTransport(local_address=..., retries=0)` faz o
   bind do socket na interface escolhida. Nos testes, `httpx.MockTransport`.

2. Corpo em streaming:
   Só os primeiros `body_sample` bytes são lidos; o restante é descartado
   e `body_truncated=True`. Respostas grandes não ocupam memória.

3. Cabeçalhos via `multi_items()`:
   Preserva ordem e duplicatas (ex: vários Set-Cookie).

4. Sem retries:
   Uma única troca por sonda; falhas viram TransportError com tag de causa.
"""

from __future__ import annotations

import asyncio
import errno
import socket
import ssl
from typing import Callable, Optional

import httpx

from core.constants import HTTP_BODY_SAMPLE_BYTES
from core.errors import Timeout, TransportError
from core.schemas import HttpCapture, ProbeRequest

TransportFactory = Callable[[Optional[str]], httpx.AsyncBaseTransport]


def default_transport(source_address: Optional[str]) -> httpx.AsyncBaseTransport:
    """Transporte TCP com bind no endereço de origem (0.0.0.0 se None)."""
    return httpx.AsyncHTTPTransport(local_address=source_address, retries=0)


def normalize_url(target: str) -> str:
    """Alvo sem esquema recebe `http://`."""
    target = target.strip()
    if "://" not in target:
        return f"http://{target}"
    return target


def _exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: Optional[BaseException] = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_transport_error(exc: Exception) -> str:
    """
    Tag de causa para uma falha de transporte do httpx.

    Olha a cadeia de exceções (httpx → httpcore → OSError) antes de recorrer
    ao texto da mensagem.
    """
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return "invalid_url"
    if isinstance(exc, httpx.ProtocolError):
        return "protocol"

    for link in _exception_chain(exc):
        if isinstance(link, ssl.SSLError):
            return "tls"
        if isinstance(link, socket.gaierror):
            return "dns"
        if isinstance(link, ConnectionRefusedError):
            return "connection_refused"
        if isinstance(link, OSError) and link.errno == errno.EADDRNOTAVAIL:
            return "bind"

    message = str(exc).lower()
    if "refused" in message:
        return "connection_refused"
    if any(m in message for m in ("name or service not known", "getaddrinfo",
                                  "nodename nor servname", "name resolution")):
        return "dns"
    if "ssl" in message or "certificate" in message:
        return "tls"
    if "cannot assign requested address" in message:
        return "bind"
    return "transport"


async def http_exchange(
    request: ProbeRequest,
    source_address: Optional[str],
    transport_factory: TransportFactory = default_transport,
    body_sample: int = HTTP_BODY_SAMPLE_BYTES,
) -> HttpCapture:
    """
    Executa UMA troca HTTP e captura status, cabeçalhos e amostra do corpo.

    Raises:
        Timeout:        A troca inteira excedeu `request.timeout`.
        TransportError: Falha de conexão, DNS, TLS, bind, protocolo ou URL.
    """
    url = normalize_url(request.target)

    async def _exchange() -> HttpCapture:
        transport = transport_factory(source_address)
        async with httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(request.timeout),
            follow_redirects=False,
        ) as client:
            async with client.stream(
                request.method,
                url,
                headers=list(request.headers),
                content=request.body.encode("utf-8") if request.body is not None else None,
            ) as response:
                sample = bytearray()
                truncated = False
                async for chunk in response.aiter_bytes():
                    remaining = body_sample - len(sample)
                    if len(chunk) > remaining:
                        sample += chunk[:remaining]
                        truncated = True
                        break
                    sample += chunk

                return HttpCapture(
                    status_code=response.status_code,
                    http_version=response.http_version,
                    headers=list(response.headers.multi_items()),
                    body_sample=bytes(sample).decode(
                        response.encoding or "utf-8", errors="replace"
                    ),
                    body_truncated=truncated,
                )

    try:
        return await asyncio.wait_for(_exchange(), timeout=request.timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise Timeout(f"HTTP {request.method} {url} excedeu {request.timeout:.1f}s") from exc
    except (httpx.InvalidURL, httpx.TransportError) as exc:
        cause = classify_transport_error(exc)
        raise TransportError(f"HTTP {request.method} {url}: {exc}", cause=cause) from exc
