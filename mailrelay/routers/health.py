from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Query

from mailrelay.core.config import RelayConfig, get_settings
from mailrelay.core.deps import get_recent_activity, get_relay_config, get_relay_transport
from mailrelay.core.events import RecentActivityHandler
from mailrelay.schemas.webhook import ConfigurationOut, StatusResponse
from mailrelay.services.relay.transport import RelayTransport

router = APIRouter(tags=["health"])


def _count_recipients(path: Path) -> int:
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return 0
    return sum(1 for line in lines if line.strip() and not line.strip().startswith("#"))


def _configuration(relay_config: RelayConfig) -> ConfigurationOut:
    email_list = Path(relay_config.recipient_list_path)
    return ConfigurationOut(
        domain=relay_config.effective_sending_domain,
        sender_email=relay_config.sender_email,
        email_list=str(email_list),
        email_list_exists=email_list.exists(),
        email_list_entries=_count_recipients(email_list),
    )


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/status")
def status_view(
    limit: int = Query(default=10, ge=1, le=200),
    relay_config: RelayConfig = Depends(get_relay_config),
    transport: RelayTransport = Depends(get_relay_transport),
    recent: RecentActivityHandler = Depends(get_recent_activity),
) -> dict:
    settings = get_settings()
    return StatusResponse(
        server=settings.SERVICE_NAME,
        status="running",
        version=settings.VERSION,
        webhook_path=settings.WEBHOOK_PATH,
        transport=transport.name,
        configuration=_configuration(relay_config),
        temp_dir_exists=Path(settings.RELAY_TEMP_DIR).is_dir(),
        recent_activity=recent.snapshot(limit),
    ).to_json_dict()


@router.get("/")
def service_info(relay_config: RelayConfig = Depends(get_relay_config)) -> dict:
    settings = get_settings()
    endpoints = {
        "webhook": settings.WEBHOOK_PATH,
        "health": "/healthz",
        "status": "/status",
    }
    if settings.ENABLE_PROMETHEUS_METRICS:
        endpoints["metrics"] = settings.PROMETHEUS_METRICS_PATH
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "status": "running",
        "endpoints": endpoints,
        "configuration": {
            "domain": relay_config.effective_sending_domain,
            "emailList": relay_config.recipient_list_path,
        },
    }
