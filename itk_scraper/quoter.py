"""
Insurance Toolkits quote acquisition
====================================
The public entry point: takes a normalized quote request, drives the shared
logged-in browser through the quoter and returns quote dicts. Failures never
escape; they come back as a single error record.
"""

import asyncio
import logging
import signal
from typing import Any, Dict, List, Optional, Union

from .config import Settings, load_settings
from .error_handler import ErrorHandler, retry_with_backoff
from .errors import (
    ExtractionEmptyError,
    NavigationTimeoutError,
    ShutdownError,
    classify_error,
    invalidates_session,
)
from .extractor import QuoteExtractor
from .form_filler import FormSequencer
from .models import FormVariant, QuoteRecord, QuoteRequest, error_record
from .session import ActiveSession, SessionManager

log = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 5 * 60

RequestLike = Union[QuoteRequest, Dict[str, Any]]


class InsuranceToolkitsQuoter:
    """
    Facade over session, form sequencer and extractor.

    Features:
    - Disabled unless INSURANCE_TOOLKITS_ENABLED=true (returns None)
    - Concurrent calls share one browser and run one at a time
    - Navigation timeouts retried with backoff after a fresh login
    - Every failure converted to a one-element error list
    - SIGINT/SIGTERM refuse new quotes and close the browser after the current one
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sessions: Optional[SessionManager] = None,
        sequencer: Optional[FormSequencer] = None,
        extractor: Optional[QuoteExtractor] = None,
        error_handler: Optional[ErrorHandler] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ):
        self.settings = settings or load_settings()
        self.sessions = sessions or SessionManager(self.settings)
        self.sequencer = sequencer or FormSequencer(self.settings)
        self.extractor = extractor or QuoteExtractor(self.settings)
        self.error_handler = error_handler or ErrorHandler(
            self.settings.output_folder, screenshots=self.settings.screenshots
        )
        self.heartbeat_interval = heartbeat_interval
        self._heartbeat: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Task] = None

        self._attempt = retry_with_backoff(
            max_retries=self.settings.max_retries,
            initial_delay=self.settings.retry_delay,
            exceptions=(NavigationTimeoutError,),
            on_retry=self._on_retry,
        )(self._run_once)

    async def get_detailed_quote(self, request: RequestLike) -> Optional[List[Dict[str, Any]]]:
        """Quotes from the full quoter, including health conditions and medications"""
        return await self._quote(request, FormVariant.DETAILED)

    async def get_quick_quote(self, request: RequestLike) -> Optional[List[Dict[str, Any]]]:
        """Quotes from the quick quoter (no health detail)"""
        return await self._quote(request, FormVariant.QUICK)

    async def _quote(self, request: RequestLike, variant: FormVariant) -> Optional[List[Dict[str, Any]]]:
        if not self.settings.enabled:
            log.debug("Insurance Toolkits integration disabled")
            return None

        try:
            quote_request = self._coerce(request)
        except (ValueError, TypeError, KeyError) as e:
            return await self._fail(e, variant)

        if self.shutting_down:
            return self._refuse(ShutdownError("Shutdown requested; quote not started"))

        log.info(f"Starting Insurance Toolkits {variant.value} quote for {quote_request.state}")
        async with self.sessions.exclusive():
            try:
                active = await self.sessions.acquire()
                records = await self._attempt(active, quote_request, variant)
            except ShutdownError as e:
                return self._refuse(e)
            except Exception as e:
                # still under the lock; the page belongs to this run
                return await self._fail(e, variant)
            self.sessions.touch()

        return [record.to_dict() for record in records]

    async def _run_once(
        self, active: ActiveSession, request: QuoteRequest, variant: FormVariant
    ) -> List[QuoteRecord]:
        if not self.sessions.is_valid():
            active = await self.sessions.acquire()
        await self.sequencer.fill(active, request, variant)
        return await self.extractor.extract(active, variant, request)

    def _on_retry(self, error: BaseException, attempt: int) -> None:
        log.info(f"Invalidating session before retry {attempt}")
        self.sessions.invalidate()

    async def _fail(self, error: BaseException, variant: FormVariant) -> List[Dict[str, Any]]:
        if invalidates_session(error):
            self.sessions.invalidate()
        elif isinstance(error, ExtractionEmptyError):
            # the run completed, only the page was empty
            self.sessions.touch()

        await self.error_handler.handle_failure(
            self.sessions.browser.page, error, context=f"{variant.value} quote"
        )

        diagnostics = {'errorType': classify_error(error)}
        if isinstance(error, ExtractionEmptyError):
            diagnostics.update(error.diagnostics)
        return [error_record(str(error), **diagnostics)]

    @staticmethod
    def _refuse(error: ShutdownError) -> List[Dict[str, Any]]:
        log.warning(str(error))
        return [error_record(str(error), errorType=classify_error(error))]

    @staticmethod
    def _coerce(request: RequestLike) -> QuoteRequest:
        if isinstance(request, QuoteRequest):
            return request.validate()
        if isinstance(request, dict):
            return QuoteRequest.from_dict(request).validate()
        raise TypeError(f"Unsupported quote request type: {type(request).__name__}")

    def get_session_status(self) -> Dict[str, Any]:
        return self.sessions.status()

    async def force_relogin(self) -> bool:
        """Drop the current session and log in again; False when login fails"""
        log.info("Forcing re-login...")
        try:
            await self.sessions.relogin()
            return True
        except Exception as e:
            self.error_handler.log_error(classify_error(e), f"Forced re-login failed: {e}", e)
            self.sessions.invalidate()
            return False

    async def close_browser(self) -> None:
        await self.stop_heartbeat()
        await self.sessions.close()

    def start_heartbeat(self) -> asyncio.Task:
        """Log the session age periodically while logged in"""
        if self._heartbeat is None or self._heartbeat.done():
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())
        return self._heartbeat

    async def stop_heartbeat(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            status = self.sessions.status()
            if status['isLoggedIn']:
                log.info(f"Session active - {status['sessionAgeMinutes']} minutes since last activity")

    @property
    def shutting_down(self) -> bool:
        return not self.sessions.accepting

    def request_shutdown(self) -> asyncio.Task:
        """Refuse new quotes and close the browser once the run in flight ends"""
        self.sessions.stop_accepting()
        if self._shutdown is None:
            self._shutdown = asyncio.get_running_loop().create_task(self.close_browser())
        return self._shutdown

    def install_signal_handlers(self) -> None:
        """Shut down on SIGINT/SIGTERM"""
        loop = asyncio.get_running_loop()

        def handle(signum: int) -> None:
            log.warning(f"Received signal {signum}, closing browser...")
            self.request_shutdown()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, handle, signum)
            except (NotImplementedError, RuntimeError):
                log.debug(f"Signal handlers unsupported on this platform for {signum}")
