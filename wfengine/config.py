"""
Engine configuration.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "WFENGINE_"


class EngineConfig(BaseModel):
    log_level: str = "INFO"
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    http_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    default_region: Optional[str] = None
    snapshot_outputs: bool = True

    @classmethod
    def from_env(cls) -> "EngineConfig":
        values = {}
        log_level = os.getenv(f"{ENV_PREFIX}LOG_LEVEL")
        if log_level:
            values["log_level"] = log_level.upper()
        http_timeout = os.getenv(f"{ENV_PREFIX}HTTP_TIMEOUT_SECONDS")
        if http_timeout:
            values["http_timeout_seconds"] = float(http_timeout)
        connect_timeout = os.getenv(f"{ENV_PREFIX}HTTP_CONNECT_TIMEOUT_SECONDS")
        if connect_timeout:
            values["http_connect_timeout_seconds"] = float(connect_timeout)
        snapshots = os.getenv(f"{ENV_PREFIX}SNAPSHOT_OUTPUTS")
        if snapshots:
            values["snapshot_outputs"] = snapshots.strip().lower() in {"1", "true", "yes", "on"}
        region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")
        if region:
            values["default_region"] = region
        return cls(**values)
