"""Typed configuration models for the gateway.

Brief:
  Pydantic models describing the YAML configuration file and the services
  catalog. Unknown keys are kept so that hand-edited files round-trip through
  load()/save() without losing data.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlocklistSource(BaseModel):
    """Brief: One subscribed blocklist.

    Inputs:
      - name: Display name; sets are keyed by it (not guaranteed unique).
      - url: Source URL (unique among sources).
      - label: Free-form category label.
      - created_at: Creation time.
      - active: Whether the list participates in block decisions.

    Outputs:
      - BlocklistSource instance.
    """

    name: str
    url: str
    label: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    active: bool = True

    class Config:
        extra = "allow"


class Service(BaseModel):
    """Brief: A named group of endpoint domains that can be blocked together."""

    blocked: bool = False
    endpoints: List[str] = Field(default_factory=list)

    class Config:
        extra = "allow"


class LoggingConfig(BaseModel):
    level: str = Field(default="info")
    stderr: bool = Field(default=True)
    file: Optional[str] = Field(default=None)

    class Config:
        extra = "allow"


class BlockingConfig(BaseModel):
    blocklists: List[BlocklistSource] = Field(default_factory=list)
    services_file: Optional[str] = Field(default="./config/services.json")

    class Config:
        extra = "allow"


class ResolverConfig(BaseModel):
    db_path: str = Field(default="./config/var/domains.db")
    trace_command: str = Field(default="dig")
    trace_timeout_seconds: float = Field(default=10.0, gt=0)

    class Config:
        extra = "allow"


class StatsConfig(BaseModel):
    refresh_interval_seconds: float = Field(default=5.0, gt=0)
    top_n: int = Field(default=50, ge=1)

    class Config:
        extra = "allow"


class GatewayConfig(BaseModel):
    """Brief: Root of the YAML configuration file.

    Example:
      >>> cfg = GatewayConfig()
      >>> cfg.stats.top_n
      50
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    audit_log: Optional[str] = Field(default="./config/logs/rdns.log")
    reload_interval_seconds: float = Field(default=10.0, gt=0)
    blocking: BlockingConfig = Field(default_factory=BlockingConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)

    class Config:
        extra = "allow"


ServiceMap = Dict[str, Service]
