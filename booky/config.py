"""Service configuration."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

NIL_UUID = uuid.UUID(int=0)


@dataclass
class AppConfig:
    env: str = ""
    timezone: str = ""


@dataclass
class StripeConfig:
    api_key: str = ""
    webhook_secret: str = ""
    api_base_url: str = ""


@dataclass
class BokioConfig:
    company_id: uuid.UUID = NIL_UUID
    token: str = ""
    base_url: str = ""


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    bokio: BokioConfig = field(default_factory=BokioConfig)

    def location(self) -> tzinfo:
        """Load the configured time zone; raises ValueError if it is unknown."""
        name = self.app.timezone
        if name in ("", "UTC"):
            return timezone.utc
        if name == "Local":
            local = datetime.now().astimezone().tzinfo
            return local if local is not None else timezone.utc
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"unknown time zone {name!r}") from exc