from __future__ import annotations

import asyncio
import os
import shlex
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import httpx

from mailrelay.core.config import RelayConfig, Settings
from mailrelay.services.relay.errors import DispatchFailed


@dataclass(frozen=True)
class TransportResult:
    success: bool
    exit_code: int | None
    output: str

    @property
    def diagnostic(self) -> str:
        return self.output.strip()


class RelayTransport:
    """Hands a serialized message artifact to the outbound bulk sender.

    Implementations return a TransportResult for any completed invocation and
    raise DispatchFailed when the invocation itself cannot run or times out.
    """

    name = "transport"

    async def send(self, *, artifact_path: Path, mode: str) -> TransportResult:  # pragma: no cover
        raise NotImplementedError


class ScriptRelayTransport(RelayTransport):
    name = "script"

    def __init__(
        self,
        command: str,
        *,
        timeout_seconds: float,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("transport command cannot be empty")
        self._timeout_seconds = timeout_seconds
        self._cwd = cwd
        self._env = env

    async def send(self, *, artifact_path: Path, mode: str) -> TransportResult:
        env = None
        if self._env:
            env = {**os.environ, **self._env}
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv,
                str(artifact_path),
                mode,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env=env,
            )
        except OSError as e:
            raise DispatchFailed("Relay command failed", f"could not start {self._argv[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_seconds)
        except asyncio.CancelledError:
            await _terminate(proc)
            raise
        except TimeoutError as e:
            await _terminate(proc)
            raise DispatchFailed(
                "Relay command timed out",
                f"{self._argv[0]} did not finish within {self._timeout_seconds:g}s",
            ) from e

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        exit_code = proc.returncode
        if exit_code == 0:
            return TransportResult(success=True, exit_code=0, output=out)
        return TransportResult(
            success=False,
            exit_code=exit_code,
            output=err.strip() or out.strip() or f"exited with status {exit_code}",
        )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    with suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


class HttpRelayTransport(RelayTransport):
    name = "http"

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("RELAY_TRANSPORT_HTTP_URL must be set for the http transport")
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._http_transport = http_transport

    async def send(self, *, artifact_path: Path, mode: str) -> TransportResult:
        content = artifact_path.read_bytes()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds, transport=self._http_transport
            ) as client:
                res = await client.post(
                    self._url,
                    params={"mode": mode},
                    content=content,
                    headers={"Content-Type": "message/rfc822"},
                )
        except httpx.TimeoutException as e:
            raise DispatchFailed("Relay request timed out", str(e)) from e
        except httpx.HTTPError as e:
            raise DispatchFailed("Relay request failed", str(e)) from e

        if res.is_success:
            return TransportResult(success=True, exit_code=0, output=res.text)
        return TransportResult(
            success=False,
            exit_code=res.status_code,
            output=res.text.strip() or f"HTTP {res.status_code}",
        )


def build_relay_transport(settings: Settings, relay_config: RelayConfig) -> RelayTransport:
    if settings.RELAY_TRANSPORT == "script":
        return ScriptRelayTransport(
            settings.RELAY_TRANSPORT_COMMAND,
            timeout_seconds=settings.RELAY_TRANSPORT_TIMEOUT_SECONDS,
            env={
                "RELAY_SENDER_EMAIL": relay_config.sender_email,
                "RELAY_EMAIL_LIST": relay_config.recipient_list_path,
            },
        )
    if settings.RELAY_TRANSPORT == "http":
        return HttpRelayTransport(
            settings.RELAY_TRANSPORT_HTTP_URL,
            timeout_seconds=settings.RELAY_TRANSPORT_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unsupported RELAY_TRANSPORT: {settings.RELAY_TRANSPORT}")
