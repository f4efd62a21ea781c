import asyncio
import os
import sys

import httpx
import pytest
from cryptography import x509
from cryptography.x509.oid import NameOID

from provisor.adapters import builder
from provisor.adapters.base import AdapterResult
from provisor.adapters.builder import MakeBuilder, parse_version
from provisor.adapters.certs import SelfSignedAuthority, parse_subject
from provisor.adapters.fetch import HttpFetcher
from provisor.adapters.files import FilePlacer, has_lines, owned_by, tree_present
from provisor.adapters.process import run_command

SERVER_SUBJECT = (
    "/C=US/ST=New York/L=New York/O=Hacker/OU=Offensive Security"
    "/CN=Hacker/emailAddress=noreply@hacker.com"
)


@pytest.mark.asyncio
async def test_run_command_captures_output_and_exit_status():
    ok = await run_command([sys.executable, "-c", "print('hello')"])
    failed = await run_command(
        [sys.executable, "-c", "import sys; sys.stderr.write('bad\\n'); sys.exit(3)"]
    )

    assert ok and ok.stdout.strip() == "hello"
    assert not failed
    assert failed.exit_info == "exit 3"
    assert failed.stderr.strip() == "bad"


@pytest.mark.asyncio
async def test_run_command_reports_missing_executable():
    result = await run_command(["definitely-not-a-real-binary-xyz"])
    assert not result
    assert "not executable" in result.exit_info


@pytest.mark.asyncio
async def test_run_command_timeout_kills_process():
    result = await run_command(
        [sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.2
    )
    assert not result
    assert result.exit_info == "timeout"


@pytest.mark.asyncio
async def test_run_command_cancellation_propagates():
    task = asyncio.create_task(
        run_command([sys.executable, "-c", "import time; time.sleep(30)"])
    )
    await asyncio.sleep(0.2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_parse_version():
    assert parse_version("cmake version 3.28.3") == (3, 28, 3)
    assert parse_version("no version here") is None
    assert parse_version("3.29") == (3, 29, 0)
    assert parse_version("cmake version 4.0.1") >= (3, 29, 0)


@pytest.mark.asyncio
async def test_make_builder_puts_search_paths_first(monkeypatch, tmp_path):
    calls = []

    async def fake_run_command(argv, **kwargs):
        calls.append((argv, kwargs))
        return AdapterResult.ok()

    monkeypatch.setattr(builder, "run_command", fake_run_command)
    monkeypatch.setenv("PATH", "/usr/bin:/bin:/snap/bin")

    await MakeBuilder().run(tmp_path, "client", search_paths=["/snap/bin"])
    await MakeBuilder(jobs=2).run(tmp_path)

    argv, kwargs = calls[0]
    assert argv == ["make", "client"]
    assert kwargs["cwd"] == tmp_path
    assert kwargs["env"]["PATH"].split(os.pathsep)[0] == "/snap/bin"
    assert calls[1][0] == ["make", "-j2"]
    assert calls[1][1]["env"] is None


def test_parse_subject_reads_openssl_format():
    name = parse_subject(SERVER_SUBJECT)
    assert name.get_attributes_for_oid(NameOID.ORGANIZATIONAL_UNIT_NAME)[0].value == (
        "Offensive Security"
    )
    assert name.get_attributes_for_oid(NameOID.EMAIL_ADDRESS)[0].value == "noreply@hacker.com"
    with pytest.raises(ValueError):
        parse_subject("/XX=unknown")


@pytest.mark.asyncio
async def test_self_signed_certificate_is_written(tmp_path):
    key_path, cert_path = tmp_path / "server.rsa.key", tmp_path / "server.rsa.crt"

    result = await SelfSignedAuthority().issue_self_signed(
        SERVER_SUBJECT, key_path, cert_path, 3650
    )

    assert result
    assert key_path.stat().st_mode & 0o777 == 0o600
    cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
    assert cert.subject == cert.issuer
    assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "Hacker"
    lifetime = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert lifetime.days == 3650


@pytest.mark.asyncio
async def test_bad_subject_is_an_adapter_failure(tmp_path):
    result = await SelfSignedAuthority().issue_self_signed(
        "not-a-subject", tmp_path / "k", tmp_path / "c", 1
    )
    assert not result
    assert not (tmp_path / "c").exists()


@pytest.mark.asyncio
async def test_http_fetcher_writes_file_atomically(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing":
            return httpx.Response(404)
        return httpx.Response(200, content=b"#!/bin/sh\necho peas\n")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = HttpFetcher(client=client)

    ok = await fetcher.download("https://example.com/linpeas.sh", tmp_path / "linpeas.sh")
    missing = await fetcher.download("https://example.com/missing", tmp_path / "missing")
    await client.aclose()

    assert ok
    assert (tmp_path / "linpeas.sh").read_bytes().startswith(b"#!/bin/sh")
    assert not missing
    assert missing.exit_info == "HTTP 404"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["linpeas.sh"]


@pytest.mark.asyncio
async def test_file_placer_operations(tmp_path):
    files = FilePlacer()
    src = tmp_path / "src"
    (src / "nested").mkdir(parents=True)
    (src / "nested" / "a.bin").write_bytes(b"abc")
    dst = tmp_path / "dst"

    assert not tree_present(src, dst)
    assert await files.copy_tree(src, dst)
    assert tree_present(src, dst)

    assert await files.make_dirs([tmp_path / "x" / "y"])
    assert (tmp_path / "x" / "y").is_dir()

    assert await files.append_lines(tmp_path / "hist", ["one", "two", "one"])
    assert await files.append_lines(tmp_path / "hist", ["two", "three"])
    assert (tmp_path / "hist").read_text() == "one\ntwo\nthree\n"
    assert has_lines(tmp_path / "hist", ["three", "one"])

    assert await files.remove([dst, tmp_path / "never-existed"])
    assert not dst.exists()

    assert owned_by([src], os.getuid(), os.getgid())

    missing = await files.copy_tree(tmp_path / "nope", dst)
    assert not missing
    assert "does not exist" in missing.stderr
