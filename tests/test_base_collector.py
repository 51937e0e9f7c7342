import asyncio
import sys

import pytest

from core.base_collector import load_json_records, powershell_argv, run_command
from core.errors import ErrorKind, ParseError, PermissionDenied, Timeout, Unavailable
from core.schemas import Domain, DomainRecords

from conftest import FakeCollector, make_iface, make_port


def test_run_command_returns_stdout():
    out = asyncio.run(run_command([sys.executable, "-c", "print('hello')"], timeout=10))
    assert out.strip() == "hello"


def test_run_command_missing_binary_is_unavailable():
    with pytest.raises(Unavailable):
        asyncio.run(run_command(["netprism-no-such-binary-xyz"], timeout=5))


def test_run_command_timeout_kills_process():
    with pytest.raises(Timeout):
        asyncio.run(
            run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.3)
        )


def test_run_command_maps_permission_message():
    script = "import sys; sys.stderr.write('Permission denied (you must be root)'); sys.exit(4)"
    with pytest.raises(PermissionDenied):
        asyncio.run(run_command([sys.executable, "-c", script], timeout=10))


def test_run_command_nonzero_exit_is_unavailable():
    with pytest.raises(Unavailable) as info:
        asyncio.run(run_command([sys.executable, "-c", "import sys; sys.exit(3)"], timeout=10))
    assert "3" in str(info.value)


def test_load_json_records_shapes():
    assert load_json_records("") == []
    assert load_json_records('{"a": 1}') == [{"a": 1}]
    assert load_json_records('[{"a": 1}, 2, {"b": 2}]') == [{"a": 1}, {"b": 2}]
    with pytest.raises(ParseError):
        load_json_records("42")


def test_collect_times_out_with_flagged_result():
    collector = FakeCollector(Domain.HOST, [DomainRecords()], delay=1.0, timeout=0.05)
    result = asyncio.run(collector.collect())

    assert result.error_kind == ErrorKind.TIMEOUT
    assert result.records.is_empty


def test_unexpected_exception_becomes_parse_error():
    def _boom():
        raise KeyError("Name")

    collector = FakeCollector(Domain.HOST, [_boom])
    result = asyncio.run(collector.collect())

    assert isinstance(result.error, ParseError)


def test_synthetic_fallback_is_opt_in():
    sample = DomainRecords(interfaces=(make_iface("demo0"),), synthetic=True)
    error = Unavailable("no tool")

    plain = FakeCollector(Domain.HOST, [error], sample=sample)
    opted = FakeCollector(Domain.HOST, [error], sample=sample, synthetic_fallback=True)

    assert asyncio.run(plain.collect()).records.is_empty
    fallback = asyncio.run(opted.collect()).records
    assert fallback.synthetic and fallback.interfaces[0].name == "demo0"


def test_fallback_tags_every_sample_record():
    untagged = DomainRecords(
        interfaces=(make_iface("demo0"),),
        ports=(make_port(8080),),
    )
    collector = FakeCollector(
        Domain.HOST, [ParseError("garbled")], sample=untagged, synthetic_fallback=True
    )

    records = asyncio.run(collector.collect()).records

    assert records.synthetic
    assert all(i.synthetic for i in records.interfaces)
    assert all(p.synthetic for p in records.ports)
    assert not untagged.interfaces[0].synthetic


def test_permission_denied_never_falls_back_to_samples():
    sample = DomainRecords(interfaces=(make_iface("demo0"),), synthetic=True)
    collector = FakeCollector(
        Domain.HOST, [PermissionDenied("denied")], sample=sample, synthetic_fallback=True
    )
    result = asyncio.run(collector.collect())

    assert result.error_kind == ErrorKind.PERMISSION_DENIED
    assert result.records.is_empty


def test_powershell_argv_forces_utf8_output():
    argv = powershell_argv("Get-NetRoute | ConvertTo-Json")

    assert argv[0] == "powershell.exe"
    assert argv[-2] == "-Command"
    assert "UTF8Encoding" in argv[-1]
    assert argv[-1].endswith("Get-NetRoute | ConvertTo-Json")
