import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from .types import UnlockState

# Configure logging
logger = logging.getLogger("LockoutTimer")


@dataclass
class ManualOverride:
    """A granted manual override of the under-pressure lockout."""
    granted_at: datetime
    expires: datetime
    source: str = "manual"

    def is_expired(self, now: datetime) -> bool:
        """Check if the override has run out."""
        return now >= self.expires


class LockoutTimer:
    """
    Tracks the single pending re-arm deadline of a vent's manual override.

    Idle -> Unlocking when an unlock is started on a locked-out, anchored vent.
    Unlocking -> Overridden when the unlock completes.
    Unlocking -> Idle when the unlock is cancelled.
    Overridden -> Idle once the deadline passes (checked every tick).
    """

    def __init__(self, duration: timedelta):
        self._duration = duration
        self._state = UnlockState.IDLE
        self._override: Optional[ManualOverride] = None
        self._unlock_started_at: Optional[datetime] = None

    @property
    def state(self) -> UnlockState:
        return self._state

    @property
    def duration(self) -> timedelta:
        return self._duration

    @property
    def active(self) -> bool:
        """True while a manual override suppresses the lockout."""
        return self._state == UnlockState.OVERRIDDEN

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._override.expires if self._override else None

    @property
    def unlock_started_at(self) -> Optional[datetime]:
        return self._unlock_started_at

    def start_unlock(self, now: datetime, in_lockout: bool, anchored: bool) -> bool:
        """
        Begin a manual unlock.

        Args:
            now: Current time
            in_lockout: Whether the vent is currently locked out
            anchored: Whether the vent is anchored in place

        Returns:
            True if the timer moved to Unlocking
        """
        if self._state == UnlockState.UNLOCKING:
            return False
        if not in_lockout or not anchored:
            return False
        self._state = UnlockState.UNLOCKING
        self._unlock_started_at = now
        logger.info(f"Unlock started at {now.isoformat()}")
        return True

    def finish_unlock(self, now: datetime, cancelled: bool = False,
                      handled: bool = False, source: str = "manual") -> bool:
        """
        Resolve a pending unlock.

        Returns:
            True if the override was granted
        """
        if self._state != UnlockState.UNLOCKING:
            return False
        if cancelled or handled:
            self.cancel_unlock("cancelled" if cancelled else "already handled")
            return False

        self._override = ManualOverride(granted_at=now, expires=now + self._duration, source=source)
        self._state = UnlockState.OVERRIDDEN
        self._unlock_started_at = None
        logger.info(f"Lockout manually overridden until {self._override.expires.isoformat()} (source: {source})")
        return True

    def cancel_unlock(self, reason: str = "interrupted") -> bool:
        """Abandon a pending unlock. Returns True if one was pending."""
        if self._state != UnlockState.UNLOCKING:
            return False
        self._state = UnlockState.IDLE
        self._unlock_started_at = None
        logger.info(f"Unlock cancelled: {reason}")
        return True

    def check_expiry(self, now: datetime) -> bool:
        """
        Re-arm the lockout if the override has run out.

        Returns:
            True if the override expired on this call
        """
        if self._state != UnlockState.OVERRIDDEN or self._override is None:
            return False
        if not self._override.is_expired(now):
            return False
        self._state = UnlockState.IDLE
        self._override = None
        logger.info(f"Manual lockout override expired at {now.isoformat()}")
        return True

    def to_dict(self) -> Dict:
        return {
            'state': self._state.value,
            'active': self.active,
            'expires': self.expires_at.isoformat() if self.expires_at else None,
            'source': self._override.source if self._override else None,
        }


@dataclass
class UnlockInteraction:
    """
    Host-side tracker for a timed, cancellable unlock action.
    Completes after `delay` unless interrupted first.
    """
    vent_id: int
    started_at: datetime
    delay: timedelta
    user: str = "manual"
    interrupted: Optional[str] = None

    def interrupt(self, reason: str) -> None:
        if self.interrupted is None:
            self.interrupted = reason

    def is_due(self, now: datetime) -> bool:
        return self.interrupted is not None or now >= self.started_at + self.delay
