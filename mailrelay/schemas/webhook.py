from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ValidationOut(_CamelModel):
    spf: bool
    dkim: bool
    dmarc: bool
    score: int
    reasons: list[str]


class WebhookResponse(_CamelModel):
    success: bool
    request_id: str
    processing_time: int
    message: str | None = None
    email_id: str | None = None
    message_id: str | None = None
    reason: str | None = None
    error: str | None = None
    validation: ValidationOut | None = None


class ConfigurationOut(_CamelModel):
    domain: str
    sender_email: str
    email_list: str
    email_list_exists: bool
    email_list_entries: int


class StatusResponse(_CamelModel):
    server: str
    status: str
    version: str
    webhook_path: str
    transport: str
    configuration: ConfigurationOut
    temp_dir_exists: bool
    recent_activity: list[dict[str, Any]]
