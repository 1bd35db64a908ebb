"""
Geolocation source abstraction for rider sessions.

A source produces position samples either on demand or as a continuous
watch. Failed fixes are reported as ``GeolocationError`` subclasses whose
messages are shown to the rider as-is.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Optional, Protocol, Union

from rider_dispatch.core.config import get_settings


@dataclass(frozen=True)
class PositionSample:
    """One position fix from the device."""

    lat: float
    lng: float
    accuracy: Optional[float]
    timestamp_ms: int


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10000
    maximum_age_ms: int = 0

    @classmethod
    def from_settings(cls) -> "PositionOptions":
        settings = get_settings()
        return cls(
            enable_high_accuracy=settings.geolocation_high_accuracy,
            timeout_ms=settings.geolocation_timeout_ms,
            maximum_age_ms=settings.geolocation_maximum_age_ms,
        )


class GeolocationError(Exception):
    """A failed position fix."""

    code = 0
    default_message = "An unknown error occurred while retrieving location."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_transient(self) -> bool:
        return True


class PermissionDeniedError(GeolocationError):
    code = 1
    default_message = "Location permission denied. Please enable location access."

    @property
    def is_transient(self) -> bool:
        return False


class PositionUnavailableError(GeolocationError):
    code = 2
    default_message = "Location information is unavailable."


class PositionTimeoutError(GeolocationError):
    code = 3
    default_message = "Location request timed out."


_ERRORS_BY_CODE = {
    error.code: error
    for error in (PermissionDeniedError, PositionUnavailableError, PositionTimeoutError)
}


def error_from_code(code: int) -> GeolocationError:
    """Map a platform geolocation error code to the matching error."""
    return _ERRORS_BY_CODE.get(code, GeolocationError)()


class GeolocationSource(Protocol):
    """Device positioning capability."""

    async def get_current_position(self, options: PositionOptions) -> PositionSample:
        """Return one fix or raise GeolocationError."""
        ...

    def watch_position(self, options: PositionOptions) -> AsyncIterator[PositionSample]:
        """Yield fixes as the device moves; raises GeolocationError on a failed fix."""
        ...


ScriptStep = Union[PositionSample, GeolocationError]


class ScriptedGeolocationSource:
    """
    Deterministic source replaying scripted fixes and failures.

    ``fixes`` answers ``get_current_position`` calls in order; once exhausted
    the last step is repeated. ``watch`` steps are consumed in order across
    watches; a watch with nothing left stays open until cancelled.
    """

    def __init__(
        self,
        fixes: Iterable[ScriptStep],
        watch: Iterable[ScriptStep] = (),
        delay: float = 0.0,
    ):
        self._fixes = list(fixes)
        self._watch = list(watch)
        self._watch_index = 0
        self._delay = delay
        self.requests = 0
        self.watches = 0
        self.last_options: Optional[PositionOptions] = None

    @staticmethod
    def _resolve(step: ScriptStep) -> PositionSample:
        if isinstance(step, GeolocationError):
            raise step
        return step

    async def get_current_position(self, options: PositionOptions) -> PositionSample:
        self.last_options = options
        if not self._fixes:
            raise PositionUnavailableError()
        index = min(self.requests, len(self._fixes) - 1)
        self.requests += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._resolve(self._fixes[index])

    async def watch_position(self, options: PositionOptions) -> AsyncIterator[PositionSample]:
        self.last_options = options
        self.watches += 1
        while self._watch_index < len(self._watch):
            step = self._watch[self._watch_index]
            self._watch_index += 1
            if self._delay:
                await asyncio.sleep(self._delay)
            yield self._resolve(step)
        await asyncio.Event().wait()
