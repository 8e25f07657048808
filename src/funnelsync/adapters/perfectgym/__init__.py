"""PerfectGym membership platform adapter."""

from __future__ import annotations

from .client import PerfectGymClient
from .gateway import PerfectGymPlatform, build_platforms

__all__ = ["PerfectGymClient", "PerfectGymPlatform", "build_platforms"]
