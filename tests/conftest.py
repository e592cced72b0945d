from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from mailrelay.core.config import RelayConfig, get_settings
from mailrelay.services.relay.transport import RelayTransport, TransportResult

AUTHENTIC_EMAIL = b"""Received-SPF: pass (example.net: domain of user@external.example designates 192.0.2.1 as permitted sender)
DKIM-Signature: v=1; a=rsa-sha256; d=external.example; s=sel; b=abc123
Authentication-Results: mx.example.net; spf=pass; dkim=pass; dmarc=pass header.from=external.example
From: Jane <user@external.example>
To: list@relay.example
Subject: Quarterly update
Message-ID: <orig-1@external.example>
Date: Mon, 19 Oct 2026 10:00:00 +0000
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="b1"

--b1
Content-Type: text/plain; charset="UTF-8"

Plain version of the update.

--b1
Content-Type: text/html; charset="UTF-8"

<p>HTML version of the update.</p>

--b1--
"""

UNAUTHENTICATED_EMAIL = b"""From: Jane <user@external.example>
To: list@relay.example
Subject: Hello there
Content-Type: text/plain; charset="UTF-8"

No authentication headers at all.
"""


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class RecordingTransport(RelayTransport):
    name = "recording"

    def __init__(self, result: TransportResult | None = None, error: Exception | None = None) -> None:
        self.result = result or TransportResult(success=True, exit_code=0, output="queued 3 recipients")
        self.error = error
        self.calls: list[dict] = []

    async def send(self, *, artifact_path: Path, mode: str) -> TransportResult:
        self.calls.append(
            {
                "artifact_path": artifact_path,
                "mode": mode,
                "existed": artifact_path.exists(),
                "content": artifact_path.read_text(encoding="utf-8") if artifact_path.exists() else None,
            }
        )
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def relay_env(tmp_path, monkeypatch) -> dict[str, Path]:
    email_list = tmp_path / "lists" / "emaillist.txt"
    config_path = tmp_path / "relay.conf"
    config_path.write_text(
        "# relay settings\n"
        'DOMAIN="relay.example"\n'
        "SENDER_EMAIL='noreply@relay.example'\n"
        f"EMAIL_LIST={email_list}\n",
        encoding="utf-8",
    )
    temp_dir = tmp_path / "relay_temp"
    capture = tmp_path / "captured.eml"
    script = write_script(
        tmp_path / "send_bulk_email.sh",
        f'cp "$1" "{capture}"\necho "relayed $2 via $RELAY_SENDER_EMAIL"\n',
    )

    monkeypatch.setenv("RELAY_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("RELAY_TEMP_DIR", str(temp_dir))
    monkeypatch.setenv("RELAY_TRANSPORT", "script")
    monkeypatch.setenv("RELAY_TRANSPORT_COMMAND", str(script))
    monkeypatch.setenv("RELAY_TRANSPORT_TIMEOUT_SECONDS", "10")
    get_settings.cache_clear()
    yield {
        "config_path": config_path,
        "email_list": email_list,
        "temp_dir": temp_dir,
        "capture": capture,
        "script": script,
        "tmp_path": tmp_path,
    }
    get_settings.cache_clear()


@pytest.fixture()
def relay_config(tmp_path) -> RelayConfig:
    return RelayConfig(
        sending_domain="relay.example",
        sender_email="noreply@relay.example",
        recipient_list_path=str(tmp_path / "emaillist.txt"),
    )


def artifacts_in(directory: Path) -> list[str]:
    if not directory.exists():
        return []
    return sorted(os.listdir(directory))
