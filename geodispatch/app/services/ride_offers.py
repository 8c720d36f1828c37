"""
Ride offer lifecycle.

One RideRequestLifecycle per outstanding offer: OFFERED until the driver
accepts or rejects, or the hard deadline passes. Terminal states are final.
The Redis-backed OfferLedger makes sure a ride request is never presented
twice to the same driver.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol, Set

from redis.exceptions import RedisError

from geodispatch.app.core.config import Settings
from geodispatch.app.core.exceptions import (
    InsufficientPermissionsError,
    OfferAlreadyPresentedError,
    OfferAlreadyResolvedError,
    OfferNotFoundError,
    PersistenceError,
)
from geodispatch.app.models.enums import OfferState
from geodispatch.app.schemas.ride_offer import Place, RideOfferCreate, RideOfferResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RideOffer:
    offer_id: str
    request_id: str
    driver_id: str
    pickup: Place
    dropoff: Place
    fare: float
    expires_at: datetime
    customer_name: str = ""
    payment_method: str = "Cash"
    ride_type: str = "Regular"


class RideHandoff(Protocol):
    async def start_ride(self, offer: RideOffer) -> None:
        ...


class DispatchNotifier(Protocol):
    async def offer_released(self, offer: RideOffer, state: OfferState) -> None:
        ...


class LoggingRideHandoff:
    async def start_ride(self, offer: RideOffer) -> None:
        logger.info("Ride %s accepted by driver %s, starting pickup", offer.request_id, offer.driver_id)


class LoggingDispatchNotifier:
    async def offer_released(self, offer: RideOffer, state: OfferState) -> None:
        logger.info(
            "Ride %s released by driver %s (%s), ready for re-routing",
            offer.request_id, offer.driver_id, state.value
        )


class RideRequestLifecycle:
    """
    Timed accept/reject state machine for a single offer.

    The countdown ticks every second; ticks are observable through on_tick
    but are not transitions. The deadline is hard: an accept that arrives
    after it finds the offer EXPIRED.
    """

    def __init__(
        self,
        offer: RideOffer,
        timeout_seconds: float = 30,
        handoff: Optional[RideHandoff] = None,
        dispatch: Optional[DispatchNotifier] = None,
        on_tick: Optional[Callable[[RideOffer, int], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
    ):
        self.offer = offer
        self.timeout_seconds = timeout_seconds
        self._handoff = handoff or LoggingRideHandoff()
        self._dispatch = dispatch or LoggingDispatchNotifier()
        self._on_tick = on_tick
        self._clock = clock
        self._tick_interval = tick_interval
        self._deadline = clock() + timeout_seconds
        self._state = OfferState.OFFERED
        self._timer: Optional[asyncio.Task] = None
        self.resolved_at: Optional[float] = None

    @property
    def state(self) -> OfferState:
        return self._state

    @property
    def timer(self) -> Optional[asyncio.Task]:
        return self._timer

    @property
    def remaining_seconds(self) -> int:
        if self._state.is_terminal:
            return 0
        return max(0, math.ceil(self._deadline - self._clock()))

    def start(self) -> asyncio.Task:
        """Start the countdown timer."""
        if self._timer is None and not self._state.is_terminal:
            self._timer = asyncio.create_task(self._countdown())
        return self._timer

    async def _countdown(self) -> None:
        while not self._state.is_terminal:
            delay = min(self._tick_interval, max(0.0, self._deadline - self._clock()))
            await asyncio.sleep(delay)
            try:
                await self.tick()
            except Exception:
                logger.exception("Offer %s countdown failed", self.offer.offer_id)
                return

    async def tick(self) -> int:
        """
        Advance the countdown.

        Returns:
            Whole seconds left, 0 once expired or resolved
        """
        if self._state.is_terminal:
            return 0
        if self._clock() >= self._deadline:
            await self._resolve(OfferState.EXPIRED)
            return 0

        remaining = self.remaining_seconds
        if self._on_tick is not None:
            self._on_tick(self.offer, remaining)
        return remaining

    async def accept(self) -> None:
        """
        Raises:
            OfferAlreadyResolvedError: If the offer is no longer OFFERED
        """
        await self._check_open()
        await self._resolve(OfferState.ACCEPTED)

    async def reject(self) -> None:
        """
        Raises:
            OfferAlreadyResolvedError: If the offer is no longer OFFERED
        """
        await self._check_open()
        await self._resolve(OfferState.REJECTED)

    async def _check_open(self) -> None:
        if not self._state.is_terminal and self._clock() >= self._deadline:
            await self._resolve(OfferState.EXPIRED)
        if self._state.is_terminal:
            raise OfferAlreadyResolvedError(self.offer.offer_id, self._state.value)

    async def _resolve(self, state: OfferState) -> None:
        self._state = state
        self.resolved_at = self._clock()
        self.cancel_timer()
        logger.info("Offer %s for ride %s is %s", self.offer.offer_id, self.offer.request_id, state.value)

        if state is OfferState.ACCEPTED:
            await self._handoff.start_ride(self.offer)
        else:
            await self._dispatch.offer_released(self.offer, state)

    def cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    def to_response(self) -> RideOfferResponse:
        return RideOfferResponse(
            offer_id=self.offer.offer_id,
            request_id=self.offer.request_id,
            driver_id=self.offer.driver_id,
            state=self._state.value,
            remaining_seconds=self.remaining_seconds,
            expires_at=self.offer.expires_at,
            pickup=self.offer.pickup,
            dropoff=self.offer.dropoff,
            fare=self.offer.fare,
        )


class OfferLedger:
    """Redis set per ride request of the drivers it was already offered to."""

    KEY_PREFIX = "ride:offered:"

    def __init__(self, redis_client, ttl_seconds: int = 3600):
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def claim(self, request_id: str, driver_id: str) -> bool:
        """
        Record that request_id is being offered to driver_id.

        Returns:
            False if this driver already saw the request
        """
        key = f"{self.KEY_PREFIX}{request_id}"
        try:
            added = await self._redis.sadd(key, driver_id)
            await self._redis.expire(key, self._ttl)
        except RedisError as exc:
            logger.error("Offer ledger unavailable: %s", exc)
            raise PersistenceError("Offer ledger unavailable") from exc
        return bool(added)

    async def drivers_offered(self, request_id: str) -> Set[str]:
        try:
            return set(await self._redis.smembers(f"{self.KEY_PREFIX}{request_id}"))
        except RedisError as exc:
            raise PersistenceError("Offer ledger unavailable") from exc


class OfferManager:
    """Creates offers, routes driver answers and keeps the live lifecycles."""

    def __init__(
        self,
        ledger: OfferLedger,
        settings: Settings,
        handoff: Optional[RideHandoff] = None,
        dispatch: Optional[DispatchNotifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ledger = ledger
        self._settings = settings
        self._handoff = handoff
        self._dispatch = dispatch
        self._clock = clock
        self._offers: Dict[str, RideRequestLifecycle] = {}

    async def offer(self, data: RideOfferCreate) -> RideRequestLifecycle:
        """
        Offer a ride request to one driver and start its countdown.

        Raises:
            OfferAlreadyPresentedError: If the driver already saw this request
            PersistenceError: If the ledger is unavailable
        """
        if not await self._ledger.claim(data.request_id, data.driver_id):
            raise OfferAlreadyPresentedError(data.request_id, data.driver_id)

        self._prune()
        timeout = data.timeout_seconds or self._settings.offer_timeout_seconds
        offer = RideOffer(
            offer_id=uuid.uuid4().hex,
            request_id=data.request_id,
            driver_id=data.driver_id,
            pickup=data.pickup,
            dropoff=data.dropoff,
            fare=data.fare,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=timeout),
            customer_name=data.customer_name,
            payment_method=data.payment_method,
            ride_type=data.ride_type,
        )
        lifecycle = RideRequestLifecycle(
            offer,
            timeout_seconds=timeout,
            handoff=self._handoff,
            dispatch=self._dispatch,
            clock=self._clock,
        )
        self._offers[offer.offer_id] = lifecycle
        lifecycle.start()

        logger.info("Offered ride %s to driver %s (offer %s)", data.request_id, data.driver_id, offer.offer_id)
        return lifecycle

    def get(self, offer_id: str) -> RideRequestLifecycle:
        lifecycle = self._offers.get(offer_id)
        if lifecycle is None:
            raise OfferNotFoundError(offer_id)
        return lifecycle

    def _owned(self, offer_id: str, driver_id: str) -> RideRequestLifecycle:
        lifecycle = self.get(offer_id)
        if lifecycle.offer.driver_id != str(driver_id):
            raise InsufficientPermissionsError("This ride offer is not addressed to you")
        return lifecycle

    async def accept(self, offer_id: str, driver_id: str) -> RideRequestLifecycle:
        lifecycle = self._owned(offer_id, driver_id)
        await lifecycle.accept()
        return lifecycle

    async def reject(self, offer_id: str, driver_id: str) -> RideRequestLifecycle:
        lifecycle = self._owned(offer_id, driver_id)
        await lifecycle.reject()
        return lifecycle

    def _prune(self) -> None:
        cutoff = self._clock() - self._settings.offer_ledger_ttl_seconds
        stale = [
            offer_id for offer_id, lifecycle in self._offers.items()
            if lifecycle.resolved_at is not None and lifecycle.resolved_at < cutoff
        ]
        for offer_id in stale:
            del self._offers[offer_id]

    async def shutdown(self) -> None:
        """Cancel every running countdown."""
        timers = [lifecycle.timer for lifecycle in self._offers.values() if lifecycle.timer is not None]
        for lifecycle in self._offers.values():
            lifecycle.cancel_timer()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._offers.clear()
