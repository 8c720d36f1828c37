"""
Geolocation collaborator contract.

Providers answer one-shot position requests and stream positions for
continuous tracking. Failures are raised as the typed acquisition errors
(PermissionDeniedError, PositionUnavailableError, AcquisitionTimeoutError).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from geodispatch.app.core.config import Settings
from geodispatch.app.services.geo import haversine_km

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None


@dataclass(frozen=True)
class PositionOptions:
    """One-shot request parameters. Durations are in seconds."""
    enable_high_accuracy: bool
    timeout: float
    maximum_age: float


@dataclass(frozen=True)
class WatchOptions:
    """Continuous tracking parameters."""
    enable_high_accuracy: bool = False
    distance_filter_meters: float = 10.0
    interval: float = 10.0
    fastest_interval: float = 5.0


class GeolocationProvider(Protocol):
    async def get_current_position(self, options: PositionOptions) -> Position:
        ...

    def watch_position(self, options: WatchOptions) -> AsyncIterator[Position]:
        ...


def high_accuracy_options(settings: Settings) -> PositionOptions:
    return PositionOptions(
        enable_high_accuracy=True,
        timeout=settings.high_accuracy_timeout_seconds,
        maximum_age=settings.high_accuracy_max_age_seconds,
    )


def low_accuracy_options(settings: Settings) -> PositionOptions:
    return PositionOptions(
        enable_high_accuracy=False,
        timeout=settings.low_accuracy_timeout_seconds,
        maximum_age=settings.low_accuracy_max_age_seconds,
    )


def tracking_options(settings: Settings) -> WatchOptions:
    return WatchOptions(
        enable_high_accuracy=False,
        distance_filter_meters=settings.tracking_distance_filter_meters,
        interval=settings.tracking_interval_seconds,
        fastest_interval=settings.tracking_fastest_interval_seconds,
    )


async def watch_by_polling(
    get_position: Callable[[PositionOptions], Awaitable[Position]],
    options: WatchOptions,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[Position]:
    """
    Build a position stream out of one-shot requests.

    Polls every `interval` seconds and only yields a position once it has
    moved at least `distance_filter_meters` from the last yielded one.
    Errors from the provider end the stream.
    """
    request = PositionOptions(
        enable_high_accuracy=options.enable_high_accuracy,
        timeout=options.interval,
        maximum_age=options.fastest_interval,
    )
    last: Optional[Position] = None

    while True:
        position = await get_position(request)
        if last is None or haversine_km(
            last.latitude, last.longitude, position.latitude, position.longitude
        ) * 1000 >= options.distance_filter_meters:
            last = position
            yield position
        else:
            logger.debug("Position moved less than %sm, filtered", options.distance_filter_meters)
        await sleep(options.interval)
