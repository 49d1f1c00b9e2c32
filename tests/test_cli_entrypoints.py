from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from autoblog_client.adapters.settings import ClientSettings
from autoblog_client.api.python_interface import AutoBlogClient
from autoblog_client.cli import jobs as jobs_cli
from autoblog_client.cli import stream as stream_cli

Handler = Callable[[httpx.Request], httpx.Response]


def _install_client(monkeypatch: pytest.MonkeyPatch, module: str, handler: Handler) -> list[str]:
    tokens: list[str] = []

    def build(token: str) -> AutoBlogClient:
        tokens.append(token)
        client = AutoBlogClient(
            ClientSettings(api_url="http://api.test", poll_interval_ms=1),
            http_transport=httpx.MockTransport(handler),
            session_id_factory=lambda: "session_cli",
        )
        if token:
            client.set_token(token)
        return client

    monkeypatch.setattr(f"autoblog_client.cli.{module}._build_client", build)
    monkeypatch.setattr(f"autoblog_client.cli.{module}.configure_runtime_logging", lambda: None)
    return tokens


def test_jobs_parser_requires_a_subcommand() -> None:
    with pytest.raises(SystemExit):
        jobs_cli.build_arg_parser().parse_args([])


def test_jobs_parser_reads_create_flags() -> None:
    parsed = jobs_cli.build_arg_parser().parse_args(
        ["--token", "tok", "create", "--kind", "website-analysis", "--url", "https://a.test"]
    )
    assert parsed.command == "create"
    assert parsed.kind == "website-analysis"
    assert parsed.token == "tok"
    assert parsed.watch is False


def test_jobs_create_prints_job_id(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"jobId": "j1"})

    tokens = _install_client(monkeypatch, "jobs", handler)
    jobs_cli.main(["--token", "tok", "create", "--kind", "website-analysis", "--url", "https://a.test"])
    assert "Job id: j1" in capsys.readouterr().out
    assert tokens == ["tok"]
    assert seen[0].url.path == "/api/v1/jobs/website-analysis"
    assert json.loads(seen[0].content) == {"url": "https://a.test"}


def test_jobs_create_website_analysis_requires_url(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_client(monkeypatch, "jobs", lambda request: httpx.Response(200, json={"jobId": "j1"}))
    with pytest.raises(SystemExit, match="--url is required"):
        jobs_cli.main(["create", "--kind", "website-analysis"])


def test_jobs_poll_exits_non_zero_for_failed_job(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    statuses = [{"status": "running", "progress": 30}, {"status": "failed", "error": "blocked"}]
    _install_client(monkeypatch, "jobs", lambda request: httpx.Response(200, json=statuses.pop(0)))
    with pytest.raises(SystemExit) as caught:
        jobs_cli.main(["poll", "j1"])
    assert caught.value.code == 1
    output = capsys.readouterr().out
    assert "j1 status=running progress=30" in output
    assert "j1 status=failed" in output


def test_jobs_watch_falls_back_to_polling(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/stream"):
            return httpx.Response(404)
        return httpx.Response(200, json={"status": "succeeded", "progress": 100})

    _install_client(monkeypatch, "jobs", handler)
    jobs_cli.main(["watch", "j1"])
    assert "j1 finished" in capsys.readouterr().out


def test_jobs_backend_errors_become_system_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_client(
        monkeypatch, "jobs", lambda request: httpx.Response(500, json={"error": "Queue offline"})
    )
    with pytest.raises(SystemExit, match="Job command failed: Queue offline"):
        jobs_cli.main(["status", "j1"])


def test_jobs_cancel_and_retry(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/cancel"):
            return httpx.Response(200, json={"cancelled": True})
        return httpx.Response(200, json={"jobId": "j2"})

    _install_client(monkeypatch, "jobs", handler)
    jobs_cli.main(["cancel", "j1"])
    jobs_cli.main(["retry", "j1"])
    output = capsys.readouterr().out
    assert "Cancel requested: True" in output
    assert "Retry job id: j2" in output


def test_stream_parser_requires_exactly_one_source() -> None:
    parser = stream_cli.build_arg_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])
    with pytest.raises(SystemExit):
        parser.parse_args(["--connection-id", "c1", "--narrative-job", "j1"])


def test_stream_endpoint_prints_generated_content(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    body = (
        b'event: content-chunk\ndata: {"content": "Hello "}\n\n'
        b'event: content-chunk\ndata: {"content": "world"}\n\n'
        b"event: complete\ndata: {}\n\n"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"connectionId": "c1"})
        return httpx.Response(200, content=body)

    _install_client(monkeypatch, "stream", handler)
    stream_cli.main(["--endpoint", "/api/v1/generate-stream", "--payload", '{"topic": "coffee"}'])
    assert "Hello world" in capsys.readouterr().out


def test_stream_narrative_unavailable_is_not_an_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _install_client(monkeypatch, "stream", lambda request: httpx.Response(404))
    stream_cli.main(["--narrative-job", "j1"])
    assert "Narration unavailable" in capsys.readouterr().out


def test_stream_section_requires_organization(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_client(monkeypatch, "stream", lambda request: httpx.Response(404))
    with pytest.raises(SystemExit, match="--organization-id is required"):
        stream_cli.main(["--narration-section", "topic"])


def test_stream_connection_error_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    body = b'event: error\ndata: {"error": "Generation failed"}\n\n'
    _install_client(monkeypatch, "stream", lambda request: httpx.Response(200, content=body))
    with pytest.raises(SystemExit) as caught:
        stream_cli.main(["--connection-id", "c1"])
    assert caught.value.code == 1
    assert "Stream failed: Generation failed" in capsys.readouterr().err
