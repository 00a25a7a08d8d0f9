"""Codec helpers for ViCare vendor interactions."""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Any
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from ..api import AuthenticationError, CommunicationError
from .vicare_models import FeaturesResponse, InstallationsResponse, TokenResponse


def generate_pkce_pair() -> tuple[str, str]:
    """Return a ``(code_verifier, code_challenge)`` pair using S256."""

    verifier = secrets.token_urlsafe(64)[:96]
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    return verifier, challenge


def extract_authorization_code(location: str | None) -> str:
    """Return the ``code`` query parameter of an OAuth redirect location."""

    if not location:
        raise AuthenticationError("ViCare login did not redirect")
    query = parse_qs(urlsplit(location).query)
    codes = query.get("code")
    if not codes or not codes[0]:
        raise AuthenticationError("ViCare login redirect carries no code")
    return codes[0]


def decode_token(raw: Any) -> TokenResponse:
    """Validate a token payload."""

    if isinstance(raw, dict) and raw.get("error"):
        raise AuthenticationError(f"ViCare token error: {raw.get('error')}")
    try:
        return TokenResponse.model_validate(raw)
    except ValidationError as err:
        raise AuthenticationError("No access token in ViCare response") from err


def decode_devices(raw: Any) -> list[dict[str, Any]]:
    """Flatten installations into device descriptors.

    Each descriptor carries ``installation_id``, ``gateway_serial``,
    ``device_id`` and ``model_id``.
    """

    try:
        model = InstallationsResponse.model_validate(raw)
    except ValidationError as err:
        raise CommunicationError("Malformed ViCare installations payload") from err

    devices: list[dict[str, Any]] = []
    for installation in model.data:
        for gateway in installation.gateways:
            for device in gateway.devices:
                devices.append(
                    {
                        "installation_id": installation.id,
                        "gateway_serial": gateway.serial,
                        "device_id": device.id,
                        "model_id": device.model_id,
                        "device_type": device.device_type,
                    }
                )
    return devices


def decode_features(raw: Any) -> list[dict[str, Any]]:
    """Return the raw feature list of a features envelope."""

    try:
        return FeaturesResponse.model_validate(raw).data
    except ValidationError as err:
        raise CommunicationError("Malformed ViCare features payload") from err


__all__ = [
    "decode_devices",
    "decode_features",
    "decode_token",
    "extract_authorization_code",
    "generate_pkce_pair",
]
