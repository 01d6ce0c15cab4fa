from pathlib import Path

import httpx
import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_check_subcommand_defaults() -> None:
    args = _parse_args(["check"])
    assert args.command == "check"
    assert args.url == "http://localhost:3000"
    assert args.timeout == 5.0


def test_check_reports_healthy_service(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def fake_get(url: str, timeout: float) -> httpx.Response:
        assert url == "http://svc:3000/health"
        return httpx.Response(200, json={"status": "healthy", "uptime": 1.5})

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert main._check("http://svc:3000/", 1.0) == 0
    assert "healthy" in capsys.readouterr().out


def test_check_fails_when_service_unreachable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_get(url: str, timeout: float) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert main._check("http://svc:3000", 1.0) == 1


def test_init_db_creates_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "users.sqlite3"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    main.main(["init-db"])

    assert db_path.exists()
    assert "complete" in capsys.readouterr().out


def test_unreachable_database_exits_with_status_one(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'missing' / 'users.sqlite3'}")

    with pytest.raises(SystemExit) as excinfo:
        main.main(["init-db"])

    assert excinfo.value.code == 1
