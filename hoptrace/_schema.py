"""
Saved-session document shapes, one model per format version.

Pure pydantic models with no I/O. Field names follow the snake_case Python
side and carry the camelCase keys of the file as aliases.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Document(BaseModel):
    # no type coercion and no NaN/Infinity anywhere in a saved file
    model_config = ConfigDict(strict=True, allow_inf_nan=False, populate_by_name=True)


class SnapshotEnvelope(_Document):
    """Fields every version carries; read first to pick the version model."""

    version: str
    config: dict[str, Any]
    hops: list[Any]
    export_date: str = Field(alias="exportDate")


class ConfigModel(_Document):
    target: str
    max_hops: int = Field(30, alias="maxHops")
    timeout: int = 1000
    probes_per_hop: int = Field(3, alias="probesPerHop")


class CompactPing(_Document):
    s: float
    e: Optional[float] = None


class HopV2(_Document):
    hop_number: int = Field(alias="hopNumber", ge=1)
    ip: str
    hostname: Optional[str] = None
    ping_history: list[CompactPing] = Field(default_factory=list, alias="pingHistory")


class SnapshotV2(_Document):
    version: str
    config: ConfigModel
    hops: list[HopV2]
    export_date: str = Field(alias="exportDate")


class HopV1(_Document):
    hop_number: int = Field(alias="hopNumber", ge=1)
    ip: str
    hostname: Optional[str] = None


class FlatPing(_Document):
    """One entry of the session-wide ping list of version 1.0.0 files."""

    sent_timestamp: float = Field(alias="sentTimestamp")
    # anything but a string simply matches no hop
    target_ip: Any = Field(None, alias="targetIp")
    response_timestamp: Optional[float] = Field(None, alias="responseTimestamp")
    response_time: Optional[float] = Field(None, alias="responseTime")
    is_successful: Optional[bool] = Field(True, alias="isSuccessful")


class SnapshotV1(_Document):
    version: str
    config: ConfigModel
    hops: list[HopV1]
    ping_history: list[FlatPing] = Field(default_factory=list, alias="pingHistory")
    export_date: str = Field(alias="exportDate")
