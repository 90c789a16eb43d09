from __future__ import annotations

import json

import pytest
from fakes import FakeCall, FakeResponse, FakeSession
from typer.testing import CliRunner

import labfiles.cli as cli_module
import labfiles_core.gitlab.api as api_module


@pytest.fixture()
def config_path(tmp_path):
    path = tmp_path / "labfiles.json"
    path.write_text(
        json.dumps({"api_root": "https://git.example.com/api/v4", "repo": "g/p", "branch": "main"}),
        encoding="utf-8",
    )
    return path


def _install_session(monkeypatch, session: FakeSession) -> None:
    monkeypatch.setattr(api_module.requests, "Session", lambda: session)
    monkeypatch.setenv("GITLAB_TOKEN", "cli-token")


def test_cli_can_write(monkeypatch, config_path) -> None:
    session = FakeSession(
        [FakeResponse(payload={"permissions": {"project_access": {"access_level": 40}}})]
    )
    _install_session(monkeypatch, session)

    result = CliRunner().invoke(cli_module.app, ["can-write", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "write_access=true" in result.output
    assert session.calls[0].headers["Authorization"] == "Bearer cli-token"


def test_cli_read_uses_content_cache(monkeypatch, config_path, tmp_path) -> None:
    session = FakeSession([FakeResponse(text="hello\n", content_type="text/plain")])
    _install_session(monkeypatch, session)
    cache_dir = tmp_path / "cache"
    args = [
        "read",
        "posts/a.md",
        "--sha",
        "abc123",
        "--cache-dir",
        str(cache_dir),
        "--config",
        str(config_path),
    ]

    runner = CliRunner()
    first = runner.invoke(cli_module.app, args)
    second = runner.invoke(cli_module.app, args)

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert "hello" in first.output
    assert "hello" in second.output
    assert len(session.calls) == 1


def test_cli_push_commits_each_file(monkeypatch, config_path, tmp_path) -> None:
    def _handler(call: FakeCall) -> FakeResponse:
        if call.method == "HEAD":
            return FakeResponse(status_code=404, text="", content_type="text/plain")
        return FakeResponse(status_code=201, payload={"id": "sha"})

    session = FakeSession(_handler)
    _install_session(monkeypatch, session)
    first = tmp_path / "one.md"
    second = tmp_path / "two.md"
    first.write_text("one", encoding="utf-8")
    second.write_text("two", encoding="utf-8")

    result = CliRunner().invoke(
        cli_module.app,
        [
            "push",
            str(first),
            str(second),
            "--message",
            "add posts",
            "--prefix",
            "/posts/",
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0
    assert "uploaded posts/one.md" in result.output
    assert "uploaded=2" in result.output
    paths = sorted(call.json_body()["actions"][0]["file_path"] for call in session.calls_for("POST"))
    assert paths == ["posts/one.md", "posts/two.md"]


def test_cli_rm_reports_api_error(monkeypatch, config_path) -> None:
    session = FakeSession(
        [FakeResponse(status_code=404, text="", content_type="text/plain")]
    )
    _install_session(monkeypatch, session)

    result = CliRunner().invoke(
        cli_module.app,
        ["rm", "x.txt", "--message", "rm", "--config", str(config_path)],
    )

    assert result.exit_code == 1
    assert "GitLab API error (404)" in result.output


def test_cli_requires_repository(monkeypatch) -> None:
    _install_session(monkeypatch, FakeSession([]))

    result = CliRunner().invoke(cli_module.app, ["ls"])

    assert result.exit_code == 1
    assert "No repository configured" in result.output


def test_cli_push_rejects_non_utf8_file_without_binary(monkeypatch, config_path, tmp_path) -> None:
    session = FakeSession([])
    _install_session(monkeypatch, session)
    image = tmp_path / "logo.png"
    image.write_bytes(b"\x89PNG\xff\xfe")

    result = CliRunner().invoke(
        cli_module.app,
        ["push", str(image), "-m", "add logo", "--config", str(config_path)],
    )

    assert result.exit_code == 1
    assert "logo.png" in result.output
    assert "utf-8" in result.output
    assert session.calls == []


def test_cli_repo_and_token_env_options(monkeypatch) -> None:
    session = FakeSession([FakeResponse(payload={"username": "jdoe", "name": "J Doe"})])
    monkeypatch.setattr(api_module.requests, "Session", lambda: session)
    monkeypatch.setenv("LABFILES_CLI_TOKEN", "other-token")

    result = CliRunner().invoke(
        cli_module.app,
        ["whoami", "--repo", "g/p", "--token-env", "LABFILES_CLI_TOKEN"],
    )

    assert result.exit_code == 0
    assert "jdoe (J Doe)" in result.output
    assert session.calls[0].headers["Authorization"] == "Bearer other-token"


def test_cli_read_without_sha_does_not_create_cache(monkeypatch, config_path, tmp_path) -> None:
    session = FakeSession([FakeResponse(text="hello\n", content_type="text/plain")])
    _install_session(monkeypatch, session)
    cache_dir = tmp_path / "cache"

    result = CliRunner().invoke(
        cli_module.app,
        ["read", "posts/a.md", "--cache-dir", str(cache_dir), "--config", str(config_path)],
    )

    assert result.exit_code == 0
    assert "hello" in result.output
    assert not cache_dir.exists()
