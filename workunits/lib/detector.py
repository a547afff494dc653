"""Stale/current decision for a single unit."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from workunits.lib.errors import DiscoveryError, ProviderError
from workunits.lib.units import UnitDescriptor, Watermark
from workunits.lib.update_provider import UpdateTimeProvider

logger = logging.getLogger(__name__)

__all__ = ["ChangeCheck", "ChangeDetector"]


@dataclass(frozen=True)
class ChangeCheck:
    """Outcome of comparing a unit's update time with its low watermark."""

    unit: UnitDescriptor
    update_time: int
    low_watermark: Watermark

    @property
    def stale(self) -> bool:
        # Strictly greater: an equal update time was already processed
        return self.update_time > self.low_watermark.value


class ChangeDetector:
    """Decides whether a unit changed since its low watermark.

    No retries happen here; a provider failure propagates as
    :class:`ProviderError`.
    """

    def __init__(self, update_provider: UpdateTimeProvider) -> None:
        self.update_provider = update_provider

    def check(self, unit: UnitDescriptor, low_watermark: Watermark) -> ChangeCheck:
        try:
            update_time = self.update_provider.get_update_time(unit)
        except DiscoveryError:
            raise
        except Exception as e:
            raise ProviderError(
                "Update time lookup failed",
                unit=unit,
                provider=getattr(self.update_provider, "name", None),
                cause=e,
            ) from e
        return ChangeCheck(unit=unit, update_time=int(update_time), low_watermark=low_watermark)

    def is_stale(self, unit: UnitDescriptor, low_watermark: Watermark) -> bool:
        return self.check(unit, low_watermark).stale
