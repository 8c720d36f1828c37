"""
Narrow interfaces to the collaborators around the location core:
who the current driver is, and how user-visible messages are surfaced.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from geodispatch.app.core.config import Settings
from geodispatch.app.core.jwt import decode_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """The signed-in driver."""
    driver_id: str
    phone: Optional[str] = None
    role: Optional[str] = None


class AuthProvider(Protocol):
    async def get_current_user(self) -> Optional[CurrentUser]:
        """Signed-in driver, or None. Never raises."""
        ...


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None:
        ...


def user_from_token_payload(payload: Optional[dict]) -> Optional[CurrentUser]:
    """Map a decoded token payload to a CurrentUser."""
    if not payload:
        return None
    driver_id = payload.get("user_id") or payload.get("sub")
    if not driver_id:
        return None
    return CurrentUser(driver_id=str(driver_id), phone=payload.get("phone"), role=payload.get("role"))


class TokenAuthProvider:
    """Resolves the current driver from a bearer token."""

    def __init__(self, token: Optional[str], settings: Settings):
        self._token = token
        self._settings = settings

    async def get_current_user(self) -> Optional[CurrentUser]:
        if not self._token:
            return None
        return user_from_token_payload(decode_access_token(self._token, self._settings))


class LoggingNotifier:
    """Notifier that writes user-facing messages to the log."""

    _LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(self._LEVELS.get(level, logging.INFO), "notify: %s", message)
