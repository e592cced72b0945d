from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("mailrelay")

DEFAULT_SENDING_DOMAIN = "example.com"
DEFAULT_SENDER_EMAIL = "noreply@example.com"
DEFAULT_RECIPIENT_LIST = "emaillist.txt"

_CONFIG_LINE_RE = re.compile(r"""^([^#=]+)=["']?([^"']*)["']?$""")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    VERSION: str = "2.0.0"
    APP_ENV: str = "dev"  # dev|test|prod
    SERVICE_NAME: str = "Email Relay Webhook"
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    WEBHOOK_PATH: str = "/webhook/email"
    WEBHOOK_MAX_BODY_BYTES: int = 50 * 1024 * 1024
    REQUEST_ID_HEADER: str = "x-request-id"

    RELAY_CONFIG_PATH: str = "relay.conf"
    RELAY_TEMP_DIR: str = "var/relay_temp"
    RELAY_TRANSPORT: str = "script"  # "script" or "http"
    RELAY_TRANSPORT_COMMAND: str = "./send_bulk_email.sh"
    RELAY_TRANSPORT_MODE: str = "relay"
    RELAY_TRANSPORT_TIMEOUT_SECONDS: float = 30.0
    RELAY_TRANSPORT_HTTP_URL: str = ""
    RELAY_SCORE_THRESHOLD: int = 50
    RELAY_DIAGNOSTIC_MAX_CHARS: int = 500

    RECENT_ACTIVITY_SIZE: int = 50
    ENABLE_PROMETHEUS_METRICS: bool = True
    PROMETHEUS_METRICS_PATH: str = "/metrics"
    ENABLE_OTEL_TRACING: bool = False
    OTEL_SERVICE_NAME: str = "mailrelay"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str = "http://localhost:4318/v1/traces"
    OTEL_EXPORTER_OTLP_HEADERS: str = ""
    OTEL_TRACE_SAMPLE_RATIO: float = 1.0
    OTEL_EXCLUDED_URLS: str = "/healthz,/metrics"

    @field_validator("RELAY_TRANSPORT")
    @classmethod
    def _validate_transport(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"script", "http"}:
            raise ValueError("RELAY_TRANSPORT must be 'script' or 'http'")
        return v

    @field_validator("RELAY_TRANSPORT_TIMEOUT_SECONDS")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("RELAY_TRANSPORT_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("RELAY_DIAGNOSTIC_MAX_CHARS", "RECENT_ACTIVITY_SIZE", "WEBHOOK_MAX_BODY_BYTES")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("OTEL_TRACE_SAMPLE_RATIO")
    @classmethod
    def _validate_otel_sample_ratio(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError("OTEL_TRACE_SAMPLE_RATIO must be between 0 and 1")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True)
class RelayConfig:
    sending_domain: str = DEFAULT_SENDING_DOMAIN
    sender_email: str = DEFAULT_SENDER_EMAIL
    recipient_list_path: str = DEFAULT_RECIPIENT_LIST

    @property
    def effective_sending_domain(self) -> str:
        if self.sending_domain:
            return self.sending_domain
        _, _, domain = self.sender_email.rpartition("@")
        return domain or DEFAULT_SENDING_DOMAIN


def parse_relay_config(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in text.splitlines():
        match = _CONFIG_LINE_RE.match(line.strip())
        if match:
            values[match.group(1).strip()] = match.group(2).strip()
    return values


def load_relay_config(path: str | Path) -> RelayConfig:
    """Read the KEY=value relay file once; a missing or unreadable file yields defaults.

    Recognized keys are DOMAIN, SENDER_EMAIL and EMAIL_LIST. Unknown keys are ignored.
    """
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("Relay config %s not found, using defaults", config_path)
        return RelayConfig()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read relay config %s, using defaults: %s", config_path, e)
        return RelayConfig()

    values = parse_relay_config(text)
    config = RelayConfig(
        sending_domain=values.get("DOMAIN", DEFAULT_SENDING_DOMAIN),
        sender_email=values.get("SENDER_EMAIL", DEFAULT_SENDER_EMAIL),
        recipient_list_path=values.get("EMAIL_LIST") or DEFAULT_RECIPIENT_LIST,
    )
    logger.info("Relay config loaded from %s (domain=%s)", config_path, config.sending_domain)
    return config
