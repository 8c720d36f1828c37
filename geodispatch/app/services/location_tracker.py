"""
Location freshness tracker.

Per driver session: acquires positions with a high-to-low accuracy
fallback, counts consecutive failures to offer a demo location, runs
continuous tracking while the driver is online, and writes every accepted
fix through to the driver location store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from geodispatch.app.core.config import Settings
from geodispatch.app.core.exceptions import (
    AppException,
    AcquisitionTimeoutError,
    DriverNotFoundError,
    InvalidCoordinateError,
    LocationAcquisitionError,
    MissingDriverIdError,
    PermissionDeniedError,
    PersistenceError,
)
from geodispatch.app.core.reliability import CircuitBreaker, CircuitOpenError
from geodispatch.app.models.enums import AccuracyTier, TrackerState
from geodispatch.app.services.collaborators import AuthProvider, LoggingNotifier, Notifier
from geodispatch.app.services.driver_location_store import DriverLocationStore
from geodispatch.app.services.geolocation import (
    GeolocationProvider,
    Position,
    PositionOptions,
    high_accuracy_options,
    low_accuracy_options,
    tracking_options,
)
from geodispatch.app.services.spatial_index import validate_coordinate

logger = logging.getLogger(__name__)

MOCK_FALLBACK_PROMPT = "Having trouble getting your location. Use demo location?"


@dataclass(frozen=True)
class LocationFix:
    """An accepted position."""
    latitude: float
    longitude: float
    tier: AccuracyTier
    accepted_at: float
    accuracy_meters: Optional[float] = None


@dataclass(frozen=True)
class FixResult:
    """
    Outcome of accepting a fix.

    persist_error is set when the write-through failed; the fix itself is
    kept either way.
    """
    fix: LocationFix
    record_id: Optional[int] = None
    persist_error: Optional[AppException] = None

    @property
    def persisted(self) -> bool:
        return self.record_id is not None


class LocationFreshnessTracker:
    """
    Location state machine for one driver session.

    UNINITIALIZED -> ACQUIRING -> FRESH -> STALE, with FAILED after an
    acquisition attempt exhausts its fallback.
    """

    def __init__(
        self,
        geolocation: GeolocationProvider,
        store: DriverLocationStore,
        auth: AuthProvider,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        vehicle_type: str = "car",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._geolocation = geolocation
        self._store = store
        self._auth = auth
        self._settings = settings
        self._notifier = notifier or LoggingNotifier()
        self._vehicle_type = vehicle_type
        self._clock = clock

        self._high_accuracy = high_accuracy_options(settings)
        self._low_accuracy = low_accuracy_options(settings)
        self._tracking = tracking_options(settings)
        self._write_breaker = CircuitBreaker(
            failure_threshold=settings.store_failure_threshold,
            reset_timeout=settings.store_reset_timeout_seconds,
            clock=clock,
            expected_exceptions=(PersistenceError,),
        )

        self._state = TrackerState.UNINITIALIZED
        self._tier: Optional[AccuracyTier] = None
        self._fix: Optional[LocationFix] = None
        self._failure_reason: Optional[str] = None
        self._permission_denied = False
        self._use_mock = False
        self._online = False
        self._tracking_task: Optional[asyncio.Task] = None
        self._refinement_task: Optional[asyncio.Task] = None
        # Serializes store writes against the offline delete
        self._store_lock = asyncio.Lock()
        self.consecutive_failures = 0

    # ---------------------- State ----------------------

    @property
    def state(self) -> TrackerState:
        if self._state is TrackerState.FRESH and self._fix is not None:
            if self._clock() - self._fix.accepted_at > self._settings.location_stale_after_seconds:
                return TrackerState.STALE
        return self._state

    @property
    def current_fix(self) -> Optional[LocationFix]:
        return self._fix

    @property
    def accuracy_tier(self) -> Optional[AccuracyTier]:
        return self._tier

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_tracking(self) -> bool:
        return self._tracking_task is not None and not self._tracking_task.done()

    @property
    def using_mock_location(self) -> bool:
        return self._use_mock

    @property
    def mock_fallback_offered(self) -> bool:
        return not self._use_mock and self.consecutive_failures >= self._settings.mock_fallback_threshold

    # ---------------------- One-shot acquisition ----------------------

    async def acquire(self) -> FixResult:
        """
        Get a fresh fix.

        High accuracy first; on timeout only, one low-accuracy retry with a
        longer max age. In mock mode the demo coordinate is returned without
        touching the geolocation provider.

        Raises:
            PermissionDeniedError, PositionUnavailableError, AcquisitionTimeoutError,
            InvalidCoordinateError: after the fallback ladder is exhausted
        """
        if self._use_mock:
            return await self._accept(self._mock_position(), AccuracyTier.MOCK)

        try:
            position, tier = await self._acquire_position()
            validate_coordinate(position.latitude, position.longitude)
        except (LocationAcquisitionError, InvalidCoordinateError) as exc:
            self._record_failure(exc)
            raise

        result = await self._accept(position, tier)
        if tier is AccuracyTier.LOW:
            self._schedule_refinement()
        return result

    async def _acquire_position(self) -> Tuple[Position, AccuracyTier]:
        self._begin(AccuracyTier.HIGH)
        try:
            return await self._request(self._high_accuracy), AccuracyTier.HIGH
        except AcquisitionTimeoutError:
            logger.info("High accuracy fix timed out, falling back to low accuracy")

        self._begin(AccuracyTier.LOW)
        return await self._request(self._low_accuracy), AccuracyTier.LOW

    def _begin(self, tier: AccuracyTier) -> None:
        self._state = TrackerState.ACQUIRING
        self._tier = tier

    async def _request(self, options: PositionOptions) -> Position:
        try:
            return await asyncio.wait_for(
                self._geolocation.get_current_position(options), timeout=options.timeout
            )
        except asyncio.TimeoutError:
            raise AcquisitionTimeoutError()

    def _record_failure(self, exc: AppException) -> None:
        self.consecutive_failures += 1
        self._state = TrackerState.FAILED
        self._failure_reason = exc.message
        if isinstance(exc, PermissionDeniedError):
            self._permission_denied = True

        logger.warning(
            "Location acquisition failed (%s consecutive): %s",
            self.consecutive_failures, exc.message
        )
        self._notifier.notify(exc.message, "error")
        if self.mock_fallback_offered:
            self._notifier.notify(MOCK_FALLBACK_PROMPT, "warning")

    # ---------------------- Accepting fixes ----------------------

    async def _accept(self, position: Position, tier: AccuracyTier) -> FixResult:
        fix = LocationFix(
            latitude=float(position.latitude),
            longitude=float(position.longitude),
            tier=tier,
            accepted_at=self._clock(),
            accuracy_meters=position.accuracy_meters,
        )
        self._fix = fix
        self._tier = tier
        self._state = TrackerState.FRESH
        self._failure_reason = None
        self._permission_denied = False
        self.consecutive_failures = 0

        if not self._online:
            return FixResult(fix=fix)
        return await self._publish(fix)

    async def _publish(self, fix: LocationFix) -> FixResult:
        user = await self._auth.get_current_user()
        try:
            if user is None or not user.driver_id:
                raise MissingDriverIdError()
            async with self._store_lock:
                # The driver may have gone offline while this fix was in flight
                if not self._online:
                    logger.info("Driver went offline, dropping location write")
                    return FixResult(fix=fix)
                record_id = await self._write_breaker.call(
                    self._store.upsert,
                    user.driver_id,
                    fix.latitude,
                    fix.longitude,
                    user.phone or "unknown",
                    self._vehicle_type,
                )
        except CircuitOpenError:
            error = PersistenceError("Location updates paused after repeated store failures")
        except (MissingDriverIdError, PersistenceError) as exc:
            error = exc
        else:
            return FixResult(fix=fix, record_id=record_id)

        logger.warning("Failed to store driver location: %s", error.message)
        self._notifier.notify("Failed to update your location", "error")
        return FixResult(fix=fix, persist_error=error)

    # ---------------------- Demo location ----------------------

    def _mock_position(self) -> Position:
        return Position(latitude=self._settings.mock_latitude, longitude=self._settings.mock_longitude)

    async def use_mock_location(self) -> FixResult:
        """Opt into the demo coordinate; acquisition and tracking stop until opted out."""
        self._use_mock = True
        await self.stop_tracking()
        await self._cancel_refinement()
        return await self._accept(self._mock_position(), AccuracyTier.MOCK)

    async def disable_mock_location(self) -> None:
        """
        Opt out of the demo coordinate.

        The demo fix is discarded; call acquire() for a real one. Tracking
        resumes if the driver is online.
        """
        self._use_mock = False
        self.consecutive_failures = 0
        if self._fix is not None and self._fix.tier is AccuracyTier.MOCK:
            self._fix = None
            self._tier = None
            self._state = TrackerState.UNINITIALIZED
        if self._online:
            self.start_tracking()

    # ---------------------- Online / offline ----------------------

    async def go_online(self) -> Optional[FixResult]:
        """
        Mark the driver online, publish a fix and start tracking.

        Acquisition failures are already recorded and notified, so they do
        not abort going online; None is returned in that case.
        """
        self._online = True
        result = None

        if self._use_mock:
            result = await self._accept(self._mock_position(), AccuracyTier.MOCK)
        elif self._fix is not None:
            result = await self._publish(self._fix)
            self._schedule_refinement()
        else:
            try:
                result = await self.acquire()
            except (LocationAcquisitionError, InvalidCoordinateError):
                logger.info("Driver is online without a location fix")

        self.start_tracking()
        self._notifier.notify("You are now online", "info")
        return result

    async def go_offline(self) -> None:
        """
        Stop tracking and remove the driver's stored record.

        A missing record is tolerated.

        Raises:
            MissingDriverIdError: If no driver is signed in
            PersistenceError: If the store fails (local state is already offline)
        """
        self._online = False
        await self.stop_tracking()
        await self._cancel_refinement()

        user = await self._auth.get_current_user()
        if user is None or not user.driver_id:
            raise MissingDriverIdError()

        # Waits for a write already inside the store; later ones see _online False
        async with self._store_lock:
            try:
                await self._store.set_offline(user.driver_id)
            except DriverNotFoundError:
                logger.info("Driver %s went offline without a stored location", user.driver_id)
            except PersistenceError:
                self._notifier.notify("Failed to update your status", "error")
                raise

        self._notifier.notify("You are now offline", "info")

    async def close(self) -> None:
        """End of session: stop all background work."""
        await self.stop_tracking()
        await self._cancel_refinement()

    # ---------------------- Continuous tracking ----------------------

    def start_tracking(self) -> bool:
        """
        Start continuous tracking.

        Only while online, outside mock mode, and without a pending
        permission denial. Returns whether a new tracking task was started.
        """
        if not self._online or self._use_mock or self._permission_denied or self.is_tracking:
            return False
        self._tracking_task = asyncio.create_task(self._track())
        logger.info("Continuous location tracking started")
        return True

    async def stop_tracking(self) -> None:
        """Stop continuous tracking. A no-op when not tracking."""
        task = self._tracking_task
        self._tracking_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Continuous location tracking stopped")

    async def _track(self) -> None:
        refined = False
        while True:
            try:
                async for position in self._geolocation.watch_position(self._tracking):
                    try:
                        validate_coordinate(position.latitude, position.longitude)
                    except InvalidCoordinateError as exc:
                        logger.warning("Ignoring tracked position: %s", exc.message)
                        continue

                    await self._accept(position, AccuracyTier.LOW)
                    if not refined:
                        self._schedule_refinement()
                        refined = True
                return
            except AcquisitionTimeoutError:
                logger.info("Location tracking timed out, re-opening watch")
                await asyncio.sleep(self._tracking.fastest_interval)
            except LocationAcquisitionError as exc:
                self._record_failure(exc)
                return

    # ---------------------- Background refinement ----------------------

    def _schedule_refinement(self) -> None:
        if self._use_mock:
            return
        if self._refinement_task is not None and not self._refinement_task.done():
            return
        self._refinement_task = asyncio.create_task(self._refine())

    async def _refine(self) -> None:
        try:
            position = await self._request(self._high_accuracy)
            validate_coordinate(position.latitude, position.longitude)
        except (LocationAcquisitionError, InvalidCoordinateError) as exc:
            logger.info("Background location refinement failed: %s", exc.message)
            return

        if self._use_mock:
            return
        await self._accept(position, AccuracyTier.HIGH)

    async def _cancel_refinement(self) -> None:
        task = self._refinement_task
        self._refinement_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
