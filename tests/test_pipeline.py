from __future__ import annotations

import asyncio

import pytest

from conftest import AUTHENTIC_EMAIL, UNAUTHENTICATED_EMAIL, RecordingTransport, artifacts_in
from mailrelay.core.config import RelayConfig
from mailrelay.services.relay.errors import InternalError, MalformedMessage
from mailrelay.services.relay.outcomes import DispatchFailedOutcome, Rejected, Relayed
from mailrelay.services.relay.pipeline import PipelineOptions, run_relay_pipeline
from mailrelay.services.relay.transport import TransportResult


def _run(raw: bytes, transport, relay_config: RelayConfig, tmp_path, **options):
    return asyncio.run(
        run_relay_pipeline(
            raw,
            relay_config=relay_config,
            transport=transport,
            options=PipelineOptions(temp_dir=str(tmp_path / "relay_temp"), **options),
        )
    )


def test_authentic_message_is_relayed(relay_config, tmp_path) -> None:
    transport = RecordingTransport()
    outcome = _run(AUTHENTIC_EMAIL, transport, relay_config, tmp_path)

    assert isinstance(outcome, Relayed)
    assert outcome.validation is not None and outcome.validation.score == 120
    assert outcome.message_id == f"<{outcome.email_id}@relay.example>"

    artifact = transport.calls[0]["content"]
    assert artifact.startswith('From: "Jane via relay.example" <noreply@relay.example>\n')
    assert "Reply-To: Jane <user@external.example>\n" in artifact
    assert "Content-Type: text/html; charset=UTF-8\n" in artifact
    assert artifact.endswith("\n\n<p>HTML version of the update.</p>")
    assert "orig-1@external.example" not in artifact
    assert artifacts_in(tmp_path / "relay_temp") == []


def test_unauthenticated_message_is_rejected_without_dispatch(relay_config, tmp_path) -> None:
    transport = RecordingTransport()
    outcome = _run(UNAUTHENTICATED_EMAIL, transport, relay_config, tmp_path)

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "Failed validation"
    assert outcome.validation.score == 20
    assert transport.calls == []
    assert not (tmp_path / "relay_temp").exists()
    assert not (tmp_path / "emaillist.txt").exists()


def test_threshold_is_configurable(relay_config, tmp_path) -> None:
    transport = RecordingTransport()
    outcome = _run(UNAUTHENTICATED_EMAIL, transport, relay_config, tmp_path, score_threshold=20)

    assert isinstance(outcome, Relayed)
    assert len(transport.calls) == 1


def test_transport_mode_is_passed_through(relay_config, tmp_path) -> None:
    transport = RecordingTransport()
    _run(AUTHENTIC_EMAIL, transport, relay_config, tmp_path, transport_mode="test")

    assert transport.calls[0]["mode"] == "test"


def test_dispatch_failure_keeps_validation(relay_config, tmp_path) -> None:
    transport = RecordingTransport(result=TransportResult(success=False, exit_code=1, output="no recipients"))
    outcome = _run(AUTHENTIC_EMAIL, transport, relay_config, tmp_path)

    assert isinstance(outcome, DispatchFailedOutcome)
    assert outcome.diagnostic == "no recipients"
    assert outcome.validation is not None and outcome.validation.score == 120


def test_malformed_input_raises(relay_config, tmp_path) -> None:
    transport = RecordingTransport()

    with pytest.raises(MalformedMessage):
        _run(b"", transport, relay_config, tmp_path)
    assert transport.calls == []


def test_unexpected_failure_is_wrapped(relay_config, tmp_path) -> None:
    transport = RecordingTransport(error=RuntimeError("disk on fire"))

    with pytest.raises(InternalError) as excinfo:
        _run(AUTHENTIC_EMAIL, transport, relay_config, tmp_path)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert artifacts_in(tmp_path / "relay_temp") == []
