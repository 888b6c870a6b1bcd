"""
Purpose: Login sessions for "online" drivers.
What it does:
An online driver is one with an active session. Being available in the pool
is a different thing (the fallback matcher ignores sessions entirely).
Sessions also accumulate the per-login stats returned by GET /drivers/{id}/stats.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from common.exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DriverSession:
    driver_id: str
    login_time: datetime
    last_update: datetime
    completed_rides: int = 0
    total_earnings: float = 0.0
    offers_received: int = 0
    offers_accepted: int = 0

    @property
    def acceptance_rate(self) -> float:
        if self.offers_received == 0:
            return 100.0
        return round(100.0 * self.offers_accepted / self.offers_received, 1)

    def to_dict(self) -> dict:
        return {
            "loginTime": self.login_time.isoformat(),
            "totalEarnings": round(self.total_earnings, 2),
            "completedRides": self.completed_rides,
        }


@dataclass(frozen=True)
class SessionSummary:
    duration_s: float
    earnings: float
    rides_completed: int

    def to_dict(self) -> dict:
        return {
            "duration": self.duration_s,
            "earnings": round(self.earnings, 2),
            "ridesCompleted": self.rides_completed,
        }


@dataclass(frozen=True)
class DriverStatsSnapshot:
    online_time_s: float
    completed_rides: int
    total_earnings: float
    acceptance_rate: float
    rating: float

    def to_dict(self) -> dict:
        return {
            "onlineTime": self.online_time_s,
            "completedRides": self.completed_rides,
            "totalEarnings": round(self.total_earnings, 2),
            "acceptanceRate": self.acceptance_rate,
            "rating": self.rating,
        }


@dataclass
class DriverSessions:
    """
    Thread-safe session table keyed by driver id.
    """
    clock: Callable[[], datetime] = _utcnow
    _sessions: Dict[str, DriverSession] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    def login(self, driver_id: str) -> DriverSession:
        """
        Start (or restart) a session. Re-login resets the session stats.
        """
        now = self.clock()
        with self._lock:
            session = DriverSession(driver_id=driver_id, login_time=now, last_update=now)
            self._sessions[driver_id] = session
        logger.info("Driver %s logged in", driver_id)
        return session

    def logout(self, driver_id: str) -> Optional[SessionSummary]:
        with self._lock:
            session = self._sessions.pop(driver_id, None)
        if session is None:
            return None
        logger.info("Driver %s logged out", driver_id)
        return SessionSummary(
            duration_s=(self.clock() - session.login_time).total_seconds(),
            earnings=session.total_earnings,
            rides_completed=session.completed_rides,
        )

    def is_online(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._sessions

    def online_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def get(self, driver_id: str) -> DriverSession:
        with self._lock:
            try:
                return self._sessions[driver_id]
            except KeyError:
                raise SessionNotFoundError("Driver must be logged in")

    def touch(self, driver_id: str) -> None:
        with self._lock:
            session = self._sessions.get(driver_id)
            if session is not None:
                session.last_update = self.clock()

    def record_offer(self, driver_id: str) -> None:
        with self._lock:
            session = self._sessions.get(driver_id)
            if session is not None:
                session.offers_received += 1

    def record_acceptance(self, driver_id: str) -> None:
        with self._lock:
            session = self._sessions.get(driver_id)
            if session is not None:
                session.offers_accepted += 1

    def record_completion(self, driver_id: str, earnings: float) -> None:
        with self._lock:
            session = self._sessions.get(driver_id)
            if session is not None:
                session.completed_rides += 1
                session.total_earnings += earnings

    def stats(self, driver_id: str, rating: float) -> DriverStatsSnapshot:
        with self._lock:
            session = self.get(driver_id)
            return DriverStatsSnapshot(
                online_time_s=(self.clock() - session.login_time).total_seconds(),
                completed_rides=session.completed_rides,
                total_earnings=session.total_earnings,
                acceptance_rate=session.acceptance_rate,
                rating=rating,
            )
