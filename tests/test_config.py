from __future__ import annotations

import pytest
from pydantic import ValidationError

from mailrelay.core.config import (
    DEFAULT_RECIPIENT_LIST,
    RelayConfig,
    Settings,
    load_relay_config,
    parse_relay_config,
)


def test_parse_strips_quotes_and_skips_comments() -> None:
    values = parse_relay_config(
        "# comment line\n"
        'DOMAIN="relay.example"\n'
        "SENDER_EMAIL='noreply@relay.example'\n"
        "EMAIL_LIST=/srv/lists/emaillist.txt\n"
        "\n"
        "not a setting\n"
    )

    assert values == {
        "DOMAIN": "relay.example",
        "SENDER_EMAIL": "noreply@relay.example",
        "EMAIL_LIST": "/srv/lists/emaillist.txt",
    }


def test_load_reads_recognized_keys(tmp_path) -> None:
    path = tmp_path / "relay.conf"
    path.write_text('DOMAIN="relay.example"\nUNKNOWN=ignored\n', encoding="utf-8")

    config = load_relay_config(path)

    assert config.sending_domain == "relay.example"
    assert config.sender_email == "noreply@example.com"
    assert config.recipient_list_path == DEFAULT_RECIPIENT_LIST


def test_missing_file_yields_defaults(tmp_path) -> None:
    assert load_relay_config(tmp_path / "absent.conf") == RelayConfig()


def test_undecodable_file_yields_defaults(tmp_path) -> None:
    path = tmp_path / "relay.conf"
    path.write_bytes(b"DOMAIN=\xff\xfe\n")

    assert load_relay_config(path) == RelayConfig()


def test_effective_domain_falls_back_to_sender_then_default() -> None:
    assert RelayConfig(sending_domain="", sender_email="a@owned.example").effective_sending_domain == "owned.example"
    assert RelayConfig(sending_domain="", sender_email="").effective_sending_domain == "example.com"


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("RELAY_TRANSPORT", "HTTP")
    monkeypatch.setenv("RELAY_SCORE_THRESHOLD", "70")

    settings = Settings()

    assert settings.RELAY_TRANSPORT == "http"
    assert settings.RELAY_SCORE_THRESHOLD == 70


@pytest.mark.parametrize(
    "name, value",
    [
        ("RELAY_TRANSPORT", "smtp"),
        ("RELAY_TRANSPORT_TIMEOUT_SECONDS", "0"),
        ("RELAY_DIAGNOSTIC_MAX_CHARS", "-1"),
        ("OTEL_TRACE_SAMPLE_RATIO", "1.5"),
    ],
)
def test_invalid_settings_are_refused(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings()
