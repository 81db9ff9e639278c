"""
Session Management
==================
Keeps one authenticated Insurance Toolkits session alive across requests.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Page

from .auth import Authenticator
from .browser import BrowserManager
from .config import Settings
from .errors import ShutdownError

log = logging.getLogger(__name__)


@dataclass
class ActiveSession:
    """A logged-in page handed to one automation run"""

    page: Page
    manager: "SessionManager"

    async def reauthenticate(self) -> Page:
        """Drop the session and log in again on the same browser"""
        self.manager.invalidate()
        active = await self.manager.acquire()
        self.page = active.page
        return self.page


class SessionManager:
    """
    Owns the browser handle and the login state.

    Features:
    - Lazy browser launch and login on first acquisition
    - Session reuse with a sliding expiration window
    - One automation run at a time through lease()
    - No new login once shutdown has been requested

    Usage:
        sessions = SessionManager(settings)
        async with sessions.lease() as active:
            ...drive active.page...
            sessions.touch()
    """

    def __init__(
        self,
        settings: Settings,
        browser: Optional[BrowserManager] = None,
        authenticator: Optional[Authenticator] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.browser = browser or BrowserManager(settings)
        self.authenticator = authenticator or Authenticator(settings)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._authenticated = False
        self._last_activity: Optional[float] = None
        self._accepting = True

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def last_activity_at(self) -> Optional[float]:
        return self._last_activity

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def is_valid(self) -> bool:
        """Authenticated, browser alive and inside the TTL window"""
        if not self._authenticated or self._last_activity is None:
            return False
        if not self.browser.is_connected:
            return False
        return self._clock() - self._last_activity < self.settings.session_ttl_seconds

    async def acquire(self) -> ActiveSession:
        """Return the live session, logging in first when it is not valid"""
        if not self._accepting:
            raise ShutdownError("Browser closed for shutdown; no new quote runs are started")

        if self.is_valid():
            log.info("Using existing session (logged in)")
            return ActiveSession(self.browser.page, self)

        if self._authenticated:
            log.info("Session expired, re-logging in...")
            self.invalidate()

        page = await self.browser.start()
        await self.authenticator.login(page, self.settings.credentials)

        self._authenticated = True
        self.touch()
        return ActiveSession(page, self)

    def touch(self) -> None:
        """Refresh the sliding expiration after a completed run"""
        self._last_activity = self._clock()

    def invalidate(self) -> None:
        """Mark the session logged out. Safe to call any number of times."""
        if self._authenticated:
            log.info("Session invalidated; next run will log in again")
        self._authenticated = False

    def status(self) -> dict:
        """Snapshot of the session; reading it changes nothing"""
        last = self._last_activity
        age_minutes = None
        last_iso = None
        if last is not None:
            age_minutes = int((self._clock() - last) // 60)
            last_iso = datetime.fromtimestamp(last, tz=timezone.utc).isoformat()

        return {
            'isLoggedIn': self._authenticated and self.browser.is_connected,
            'browserConnected': self.browser.is_connected,
            'lastActivityTime': last_iso,
            'sessionAgeMinutes': age_minutes,
        }

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the page exclusively without acquiring a session"""
        if self._lock.locked():
            log.info("Browser busy, waiting for the current run to finish")
        async with self._lock:
            yield

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[ActiveSession]:
        """Hold the page exclusively for one acquire -> drive -> release cycle"""
        async with self.exclusive():
            yield await self.acquire()

    async def relogin(self) -> None:
        """Operator-triggered reset: forget the session and log in again"""
        async with self._lock:
            self.invalidate()
            self._last_activity = None
            await self.acquire()

    def stop_accepting(self) -> None:
        """Refuse every later acquisition; the run in flight may finish"""
        self._accepting = False

    async def close(self) -> None:
        """Wait for the run in flight, then tear the browser down and forget the session"""
        async with self.exclusive():
            log.info("Closing browser instance...")
            self._authenticated = False
            self._last_activity = None
            await self.browser.close()
