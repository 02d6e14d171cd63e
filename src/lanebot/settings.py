from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .telegram.api_models import UpdateKind

__all__ = [
    "DispatcherSettings",
    "LanebotSettings",
    "PollingSettings",
    "WebhookSettings",
]


def _check_allowed_updates(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    known = {kind.value for kind in UpdateKind}
    unknown = [item for item in value if item not in known]
    if unknown:
        raise ValueError(f"unknown update types: {', '.join(unknown)}")
    return list(dict.fromkeys(value))


class PollingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_s: int = Field(default=50, ge=0)
    limit: int | None = Field(default=None, ge=1, le=100)
    drop_pending: bool = True
    retry_delay_s: float = Field(default=2.0, gt=0)
    max_retry_delay_s: float = Field(default=30.0, gt=0)
    allowed_updates: list[str] | None = None

    @field_validator("allowed_updates")
    @classmethod
    def validate_allowed_updates(cls, value: list[str] | None) -> list[str] | None:
        return _check_allowed_updates(value)

    @model_validator(mode="after")
    def check_retry_bounds(self) -> PollingSettings:
        if self.max_retry_delay_s < self.retry_delay_s:
            raise ValueError("max_retry_delay_s must be >= retry_delay_s")
        return self


class WebhookSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    listen_host: str = "0.0.0.0"
    listen_port: int = Field(default=8443, ge=0, le=65535)
    path: str | None = None
    secret_token: str | None = None
    max_connections: int | None = Field(default=None, ge=1, le=100)
    drop_pending: bool = False
    allowed_updates: list[str] | None = None
    max_buffer_size: int = Field(default=100, ge=1)

    @field_validator("allowed_updates")
    @classmethod
    def validate_allowed_updates(cls, value: list[str] | None) -> list[str] | None:
        return _check_allowed_updates(value)


class DispatcherSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_ttl_s: float | None = Field(default=None, gt=0)
    reap_interval_s: float = Field(default=1.0, gt=0)
    stop_grace_s: float = Field(default=10.0, ge=0)
    timer_tick_s: float = Field(default=1.0, gt=0)


class LanebotSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bot_token: str = Field(min_length=1)
    transport: Literal["polling", "webhook"] = "polling"
    polling: PollingSettings = Field(default_factory=PollingSettings)
    webhook: WebhookSettings | None = None
    dispatcher: DispatcherSettings = Field(default_factory=DispatcherSettings)

    @model_validator(mode="after")
    def check_webhook_table(self) -> LanebotSettings:
        if self.transport == "webhook" and self.webhook is None:
            raise ValueError("transport 'webhook' requires a [webhook] table")
        return self
