from __future__ import annotations

from fastapi import Request

from mailrelay.core.config import RelayConfig
from mailrelay.core.events import RecentActivityHandler
from mailrelay.services.relay.transport import RelayTransport


def get_relay_config(request: Request) -> RelayConfig:
    return request.app.state.relay_config


def get_relay_transport(request: Request) -> RelayTransport:
    return request.app.state.relay_transport


def get_recent_activity(request: Request) -> RecentActivityHandler:
    return request.app.state.recent_activity
