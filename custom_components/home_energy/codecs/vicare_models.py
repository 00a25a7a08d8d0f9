"""Pydantic models for ViCare API payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenResponse(BaseModel):
    """Bearer token payload returned by the IAM token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | float | None = None


class DeviceSummary(BaseModel):
    """Device attached to a gateway."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    model_id: str | None = Field(default=None, alias="modelId")
    device_type: str | None = Field(default=None, alias="deviceType")
    status: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        """Device ids arrive as strings or integers."""

        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class GatewaySummary(BaseModel):
    """Gateway of an installation."""

    model_config = ConfigDict(extra="ignore")

    serial: str
    devices: list[DeviceSummary] = Field(default_factory=list)


class InstallationSummary(BaseModel):
    """Installation with its gateways."""

    model_config = ConfigDict(extra="ignore")

    id: str
    description: str | None = None
    gateways: list[GatewaySummary] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        """Installation ids arrive as integers."""

        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class InstallationsResponse(BaseModel):
    """Envelope returned by ``equipment/installations``."""

    model_config = ConfigDict(extra="ignore")

    data: list[InstallationSummary] = Field(default_factory=list)


class FeatureProperty(BaseModel):
    """Typed property of a feature (``{"type": ..., "value": ...}``)."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    value: Any = None
    unit: str | None = None


class FeaturePayload(BaseModel):
    """Single feature entry of the features list."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    feature: str
    properties: dict[str, FeatureProperty] = Field(default_factory=dict)
    commands: dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = Field(default=True, alias="isEnabled")

    @field_validator("properties", mode="before")
    @classmethod
    def _keep_typed_properties(cls, value: Any) -> Any:
        """Drop properties that are not typed objects."""

        if not isinstance(value, dict):
            return {}
        return {key: item for key, item in value.items() if isinstance(item, dict)}


class FeaturesResponse(BaseModel):
    """Envelope returned by the device features endpoint."""

    model_config = ConfigDict(extra="ignore")

    data: list[dict[str, Any]] = Field(default_factory=list)


__all__ = [
    "DeviceSummary",
    "FeaturePayload",
    "FeatureProperty",
    "FeaturesResponse",
    "GatewaySummary",
    "InstallationSummary",
    "InstallationsResponse",
    "TokenResponse",
]
