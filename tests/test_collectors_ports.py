import asyncio

import pytest

from collectors.ports import (
    WindowsPortCollector,
    parse_netstat_listening,
    parse_ss,
    parse_tasklist,
    parse_tcp_listeners,
    split_host_port,
)
from core.errors import ParseError, Unavailable
from core.schemas import PortDirection, Transport

SS_OUTPUT = """\
udp   UNCONN 0      0         127.0.0.53%lo:53        0.0.0.0:*     users:(("systemd-resolve",pid=612,fd=13))
tcp   LISTEN 0      4096            0.0.0.0:22        0.0.0.0:*     users:(("sshd",pid=800,fd=3))
tcp   LISTEN 0      511                [::]:80           [::]:*
tcp   ESTAB  0      0          192.168.1.5:22   192.168.1.10:51234 users:(("sshd",pid=901,fd=4))
tcp   ESTAB  0      0          192.168.1.5:40112 140.82.112.4:443  users:(("git-remote-http",pid=1200,fd=5))
"""


@pytest.mark.parametrize(
    "token,expected",
    [
        ("0.0.0.0:22", ("0.0.0.0", 22)),
        ("[::]:80", ("::", 80)),
        ("127.0.0.53%lo:53", ("127.0.0.53", 53)),
        ("*:*", ("*", 0)),
    ],
)
def test_split_host_port(token, expected):
    assert split_host_port(token) == expected


def test_parse_ss_infers_direction_and_process():
    bindings = parse_ss(SS_OUTPUT)

    assert [b.port for b in bindings] == [53, 22, 80, 22, 40112]
    dns, sshd, http, inbound, outbound = bindings

    assert dns.protocol == Transport.UDP and dns.direction == PortDirection.LISTENING
    assert dns.local_address == "127.0.0.53"
    assert (sshd.pid, sshd.process_name) == (800, "sshd")
    assert http.pid is None and http.process_name == "N/A"
    assert inbound.direction == PortDirection.INBOUND
    assert inbound.remote_address == "192.168.1.10:51234"
    assert outbound.direction == PortDirection.OUTBOUND
    assert outbound.network == "192.168.1.5:40112"


def test_parse_ss_rejects_truncated_line():
    with pytest.raises(ParseError):
        parse_ss("tcp LISTEN 0 128\n")


def test_parse_tcp_listeners_accepts_numeric_and_text_state():
    items = [
        {"LocalAddress": "0.0.0.0", "LocalPort": 135, "OwningProcess": 1000, "State": 2, "ProcessName": "svchost"},
        {"LocalAddress": "::", "LocalPort": 445, "OwningProcess": 4, "State": "Listen"},
        {"LocalAddress": "10.0.0.5", "LocalPort": 50000, "OwningProcess": 77, "State": 5},
    ]
    bindings = parse_tcp_listeners(items)

    assert [(b.port, b.process_name) for b in bindings] == [(135, "svchost"), (445, "N/A")]
    assert bindings[1].pid == 4


def test_parse_netstat_with_tasklist_names():
    netstat = """\
Active Connections

  Proto  Local Address          Foreign Address        State           PID
  TCP    0.0.0.0:135            0.0.0.0:0              LISTENING       1000
  TCP    127.0.0.1:5000         0.0.0.0:0              LISTENING       2222
  TCP    192.168.0.20:50000     20.1.1.1:443           ESTABLISHED     3333
"""
    tasklist = '"svchost.exe","1000","Services","0","12,000 K"\n"python.exe","2222","Console","1","30,000 K"\n'

    bindings = parse_netstat_listening(netstat, parse_tasklist(tasklist))

    assert [(b.port, b.pid, b.process_name) for b in bindings] == [
        (135, 1000, "svchost.exe"),
        (5000, 2222, "python.exe"),
    ]


def test_windows_collector_falls_back_to_netstat(monkeypatch):
    calls = []

    async def _run(*argv):
        calls.append(argv[0])
        if argv[0] == "powershell.exe":
            raise Unavailable("Get-NetTCPConnection missing")
        if argv[0] == "netstat":
            return "  TCP    0.0.0.0:3389   0.0.0.0:0   LISTENING   1500\n"
        return '"svchost.exe","1500","Services","0","1 K"\n'

    collector = WindowsPortCollector(timeout=2)
    monkeypatch.setattr(collector, "_run", _run)
    result = asyncio.run(collector.collect())

    assert result.ok
    assert calls[0] == "powershell.exe"
    [binding] = result.records.ports
    assert (binding.port, binding.process_name) == (3389, "svchost.exe")
