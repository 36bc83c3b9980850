from __future__ import annotations

import logging

import pytest

import app
from adapters.sms_transports import DryRunTransport


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("fiserelay", logging.INFO, __file__, 1, message, None, None)


def test_redacting_formatter_masks_secret_env_values(monkeypatch) -> None:
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "tok-secret-123")
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "tok-secret")
    formatter = app._RedactingFormatter(["TWILIO_AUTH_TOKEN", "TWILIO_ACCOUNT_SID", "UNSET_NAME"])

    text = formatter.format(_record("auth tok-secret-123 sid tok-secret"))

    assert "tok-secret" not in text
    assert text.endswith("auth *** sid ***")


def test_secret_names_only_when_redaction_enabled() -> None:
    assert app._secret_env_names({"redact": {"enabled": False, "patterns": ["A"]}}) == []
    assert app._secret_env_names({"redact": {"enabled": True, "patterns": ["A"]}}) == ["A"]
    assert app._secret_env_names({}) == []


def test_build_transport_follows_configured_method(monkeypatch) -> None:
    monkeypatch.setattr(app.settings, "TRANSPORT_METHOD", "dry_run")
    assert isinstance(app._build_transport(), DryRunTransport)

    monkeypatch.setattr(app.settings, "TRANSPORT_METHOD", "carrier-pigeon")
    with pytest.raises(RuntimeError):
        app._build_transport()


def test_recent_command_prints_empty_ledger(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setattr(app.settings, "DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setattr(app, "_print_banner", lambda: None)

    app.main(["recent", "--limit", "5"])

    assert "No transactions recorded yet." in capsys.readouterr().out
