"""Backend package exports."""
from __future__ import annotations

from typing import Any

from .base import FeatureProviderProto, HistoryProviderProto
from .factory import create_client

__all__ = [
    "FeatureProviderProto",
    "GlowmarktClient",
    "HistoryProviderProto",
    "VicareClient",
    "create_client",
]


def __getattr__(name: str) -> Any:
    """Lazily import client implementations to avoid circular imports."""

    if name == "GlowmarktClient":
        from .glowmarkt import GlowmarktClient

        globals()[name] = GlowmarktClient
        return GlowmarktClient
    if name == "VicareClient":
        from .vicare import VicareClient

        globals()[name] = VicareClient
        return VicareClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
