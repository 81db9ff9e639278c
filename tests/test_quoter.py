"""End-to-end tests for the quote facade against the fake site."""

import asyncio
import os
import signal

import pytest

from conftest import (
    QUOTE_URL,
    FakeBrowserManager,
    FakeClock,
    FakeSite,
    empty_panel,
    make_settings,
    quick_panel,
    results_page,
)
from itk_scraper.auth import Authenticator
from itk_scraper.config import LOGIN_URL
from itk_scraper.error_handler import ErrorHandler
from itk_scraper.models import QuoteRequest
from itk_scraper.quoter import InsuranceToolkitsQuoter
from itk_scraper.session import SessionManager

HOUR = 60 * 60


class TestInsuranceToolkitsQuoter:
    def setup_method(self):
        self.site = FakeSite()
        self.clock = FakeClock()

    def make_quoter(self, tmp_path, **overrides) -> InsuranceToolkitsQuoter:
        settings = make_settings(tmp_path / "output", **overrides)
        self.browser = FakeBrowserManager(self.site)
        sessions = SessionManager(
            settings,
            browser=self.browser,
            authenticator=Authenticator(settings),
            clock=self.clock,
        )
        return InsuranceToolkitsQuoter(
            settings,
            sessions=sessions,
            error_handler=ErrorHandler(settings.output_folder, screenshots=settings.screenshots),
        )

    @pytest.mark.asyncio
    async def test_disabled_integration_returns_none(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path, enabled=False)

        assert await quoter.get_detailed_quote(scenario_request) is None
        assert await quoter.get_quick_quote(scenario_request) is None
        assert self.site.navigations == []

    @pytest.mark.asyncio
    async def test_detailed_quote_end_to_end(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert len(quotes) == 1
        quote = quotes[0]
        assert quote['provider'] == "Mutual of Omaha"
        assert quote['monthlyPremium'] == 41.87
        assert quote['coverageType'] == "Level"
        assert quote['faceAmount'] is None
        assert 'error' not in quote
        assert quoter.get_session_status()['isLoggedIn'] is True

    @pytest.mark.asyncio
    async def test_accepts_quote_request_objects(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_detailed_quote(QuoteRequest.from_dict(scenario_request))

        assert quotes[0]['monthlyPremium'] == 41.87

    @pytest.mark.asyncio
    async def test_quick_quote_with_premium_target(self, tmp_path, scenario_request):
        scenario_request.pop("faceAmount")
        scenario_request["premium"] = 60
        self.site.results_html = results_page(quick_panel("$9,100"), quick_panel("$8,750", logo="transamerica"))
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_quick_quote(scenario_request)

        assert [q['faceAmount'] for q in quotes] == [9100.0, 8750.0]
        assert all(q['monthlyPremium'] == 60.0 for q in quotes)
        assert quotes[1]['provider'] == "Transamerica"

    @pytest.mark.asyncio
    async def test_form_not_found_keeps_session(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)
        await quoter.get_detailed_quote(scenario_request)
        self.site.form_missing = True

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert len(quotes) == 1
        assert quotes[0]['provider'] == "InsuranceToolkits"
        assert quotes[0]['error'] is True
        assert "form not found" in quotes[0]['errorMessage'].lower()
        assert quotes[0]['errorType'] == "FormNotFoundError"
        assert quoter.get_session_status()['isLoggedIn'] is True

    @pytest.mark.asyncio
    async def test_no_results_returns_diagnostic_record(self, tmp_path, scenario_request):
        self.site.results_html = results_page(empty_panel(), empty_panel())
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert len(quotes) == 1
        assert quotes[0]['error'] is True
        assert quotes[0]['panelCount'] == 2
        assert quotes[0]['spanCount'] == 2
        assert quotes[0]['errorType'] == "ExtractionEmptyError"
        assert quoter.get_session_status()['isLoggedIn'] is True

    @pytest.mark.asyncio
    async def test_expired_session_logs_in_before_quote_page(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)
        await quoter.get_detailed_quote(scenario_request)
        self.clock.advance(25 * HOUR)
        self.site.navigations.clear()

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['monthlyPremium'] == 41.87
        assert self.site.login_count == 2
        assert self.site.navigations == [LOGIN_URL, QUOTE_URL]

    @pytest.mark.asyncio
    async def test_navigation_timeout_is_retried_after_fresh_login(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path, max_retries=1)
        self.site.goto_timeouts = 1

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['monthlyPremium'] == 41.87
        assert self.site.login_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_invalidate_session(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path, max_retries=1)
        self.site.goto_timeouts = 5

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['error'] is True
        assert quotes[0]['errorType'] == "NavigationTimeoutError"
        assert quoter.get_session_status()['isLoggedIn'] is False

    @pytest.mark.asyncio
    async def test_login_failure_becomes_error_record(self, tmp_path, scenario_request):
        self.site.password = "rotated"
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['errorType'] == "AuthError"
        assert "Invalid email or password" in quotes[0]['errorMessage']
        assert quoter.get_session_status()['isLoggedIn'] is False

    @pytest.mark.asyncio
    async def test_missing_credentials_is_not_retried(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path, credentials=None)

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['errorType'] == "ConfigError"
        assert self.site.navigations == []

    @pytest.mark.asyncio
    async def test_invalid_request_becomes_error_record(self, tmp_path, scenario_request):
        scenario_request["state"] = "Texas"
        quoter = self.make_quoter(tmp_path)

        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quotes[0]['errorType'] == "ValueError"
        assert self.browser.starts == 0

    @pytest.mark.asyncio
    async def test_failure_screenshot_is_captured(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path, screenshots=True)
        self.site.form_missing = True

        await quoter.get_detailed_quote(scenario_request)

        [path] = self.browser.page.screenshots
        assert "error_FormNotFoundError_" in path

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_login(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)

        results = await asyncio.gather(
            quoter.get_detailed_quote(scenario_request),
            quoter.get_detailed_quote(scenario_request),
            quoter.get_detailed_quote(scenario_request),
        )

        assert all(r[0]['monthlyPremium'] == 41.87 for r in results)
        assert self.site.login_count == 1
        assert self.site.navigations.count(QUOTE_URL) == 3

    @pytest.mark.asyncio
    async def test_force_relogin_and_close(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)
        await quoter.get_detailed_quote(scenario_request)

        assert await quoter.force_relogin() is True
        assert self.site.login_count == 2

        await quoter.close_browser()
        status = quoter.get_session_status()
        assert status['isLoggedIn'] is False
        assert status['browserConnected'] is False

    @pytest.mark.asyncio
    async def test_force_relogin_reports_failure(self, tmp_path):
        quoter = self.make_quoter(tmp_path)
        self.site.password = "rotated"

        assert await quoter.force_relogin() is False
        assert quoter.get_session_status()['isLoggedIn'] is False

    @pytest.mark.asyncio
    async def test_heartbeat_runs_until_stopped(self, tmp_path, scenario_request, caplog):
        caplog.set_level("INFO", logger="itk_scraper")
        quoter = self.make_quoter(tmp_path)
        quoter.heartbeat_interval = 0.01
        await quoter.get_detailed_quote(scenario_request)

        task = quoter.start_heartbeat()
        assert quoter.start_heartbeat() is task
        await asyncio.sleep(0.05)
        await quoter.stop_heartbeat()

        assert task.done()
        assert "Session active" in caplog.text

    @pytest.mark.asyncio
    async def test_login_failure_is_handled_while_the_page_is_held(self, tmp_path, scenario_request):
        self.site.password = "rotated"
        quoter = self.make_quoter(tmp_path)
        held = []
        original = quoter.error_handler.handle_failure

        async def recording(page, error, context=""):
            held.append(quoter.sessions.busy)
            return await original(page, error, context)

        quoter.error_handler.handle_failure = recording

        results = await asyncio.gather(
            quoter.get_detailed_quote(scenario_request),
            quoter.get_detailed_quote(scenario_request),
        )

        assert [r[0]['errorType'] for r in results] == ["AuthError", "AuthError"]
        assert held == [True, True]

    @pytest.mark.asyncio
    async def test_shutdown_refuses_new_quotes(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)
        await quoter.get_detailed_quote(scenario_request)

        await quoter.request_shutdown()
        quotes = await quoter.get_detailed_quote(scenario_request)

        assert quoter.shutting_down
        assert quotes[0]['error'] is True
        assert quotes[0]['errorType'] == "ShutdownError"
        assert self.browser.starts == 1
        assert self.browser.closes == 1
        assert self.site.login_count == 1

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_the_quote_in_flight(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)

        async def shut_down_later():
            await asyncio.sleep(0)
            await quoter.request_shutdown()

        [quotes, _] = await asyncio.gather(
            quoter.get_detailed_quote(scenario_request),
            shut_down_later(),
        )

        assert quotes[0]['monthlyPremium'] == 41.87
        assert self.browser.closes == 1

    @pytest.mark.asyncio
    async def test_sigint_closes_browser_and_stops_quoting(self, tmp_path, scenario_request):
        quoter = self.make_quoter(tmp_path)
        loop = asyncio.get_running_loop()
        quoter.install_signal_handlers()
        try:
            await quoter.get_detailed_quote(scenario_request)

            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(0.05)
            assert quoter.shutting_down
            await quoter.request_shutdown()

            quotes = await quoter.get_detailed_quote(scenario_request)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)

        assert quotes[0]['errorType'] == "ShutdownError"
        assert self.browser.starts == 1
        assert quoter.get_session_status()['browserConnected'] is False
