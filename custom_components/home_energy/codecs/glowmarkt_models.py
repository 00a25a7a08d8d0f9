"""Pydantic models for Glowmarkt API payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthResponse(BaseModel):
    """Token payload returned by ``POST /auth``."""

    model_config = ConfigDict(extra="ignore")

    valid: bool = True
    token: str
    exp: int | float | None = None


class ResourceSummary(BaseModel):
    """Metered resource attached to a virtual entity."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource_id: str = Field(alias="resourceId")
    classifier: str = ""
    name: str | None = None
    base_unit: str | None = Field(default=None, alias="baseUnit")


class VirtualEntity(BaseModel):
    """Virtual entity grouping the resources of one meter point."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ve_id: str = Field(alias="veId")
    name: str | None = None
    resources: list[ResourceSummary] = Field(default_factory=list)


class FirstTimeData(BaseModel):
    """``data`` section of ``/first-time``."""

    model_config = ConfigDict(extra="ignore")

    firstTs: int | float | None = None


class LastTimeData(BaseModel):
    """``data`` section of ``/last-time``."""

    model_config = ConfigDict(extra="ignore")

    lastTs: int | float | None = None


class FirstTimeResponse(BaseModel):
    """Envelope returned by ``/first-time``."""

    model_config = ConfigDict(extra="ignore")

    data: FirstTimeData = Field(default_factory=FirstTimeData)


class LastTimeResponse(BaseModel):
    """Envelope returned by ``/last-time``."""

    model_config = ConfigDict(extra="ignore")

    data: LastTimeData = Field(default_factory=LastTimeData)


class ReadingsResponse(BaseModel):
    """Envelope returned by ``/readings``."""

    model_config = ConfigDict(extra="ignore")

    data: list[tuple[int | float, float | None]] = Field(default_factory=list)
    units: str | None = None

    @field_validator("data", mode="before")
    @classmethod
    def _drop_malformed_rows(cls, value: Any) -> Any:
        """Keep only ``[timestamp, value]`` pairs."""

        if not isinstance(value, list):
            return []
        return [
            list(row[:2])
            for row in value
            if isinstance(row, (list, tuple))
            and len(row) >= 2
            and isinstance(row[0], (int, float))
            and not isinstance(row[0], bool)
        ]


__all__ = [
    "AuthResponse",
    "FirstTimeResponse",
    "LastTimeResponse",
    "ReadingsResponse",
    "ResourceSummary",
    "VirtualEntity",
]
