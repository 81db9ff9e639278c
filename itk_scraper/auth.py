"""
Insurance Toolkits Authentication
=================================
Drives the login form once per session.
"""

import logging
from typing import Optional

from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

from .config import LOGIN_SELECTORS, Credentials, Settings
from .errors import AuthError, ConfigError

log = logging.getLogger(__name__)


class Authenticator:
    """
    Logs the shared page in to Insurance Toolkits.

    Login is never retried here; the caller decides whether to try again.
    """

    SELECTORS = LOGIN_SELECTORS

    def __init__(self, settings: Settings):
        self.settings = settings

    async def login(self, page: Page, credentials: Optional[Credentials]) -> None:
        """
        Log in and wait for the post-login navigation.

        Raises:
            ConfigError: credentials are not configured
            AuthError: login form missing or navigation did not complete
        """
        if credentials is None or not credentials.complete:
            raise ConfigError(
                "INSURANCE_TOOLKITS_EMAIL and INSURANCE_TOOLKITS_PASSWORD must be set in environment variables"
            )
        if not self.settings.login_url:
            raise ConfigError("INSURANCE_TOOLKITS_LOGIN_URL is not configured")

        log.info("Logging in to Insurance Toolkits...")
        nav_timeout = self.settings.navigation_timeout_ms

        try:
            await page.goto(self.settings.login_url, wait_until="networkidle", timeout=nav_timeout)
        except PlaywrightTimeout as e:
            raise AuthError(f"Login page navigation timed out: {e}") from e

        try:
            await page.wait_for_selector(self.SELECTORS['email_input'], timeout=self.settings.field_timeout_ms)
        except PlaywrightTimeout as e:
            raise AuthError(f"Login form not found at {page.url}") from e

        await self._enter_credentials(page, credentials)
        await self._submit_login(page)

        log.info("Login successful - session established")

    async def _enter_credentials(self, page: Page, credentials: Credentials) -> None:
        delay = self.settings.typing_delay_ms
        try:
            email = page.locator(self.SELECTORS['email_input'])
            await email.press_sequentially(credentials.email, delay=delay)
            password = page.locator(self.SELECTORS['password_input'])
            await password.press_sequentially(credentials.password, delay=delay)
        except PlaywrightTimeout as e:
            raise AuthError(f"Login form fields not usable: {e}") from e

    async def _submit_login(self, page: Page) -> None:
        try:
            async with page.expect_navigation(
                wait_until="networkidle", timeout=self.settings.navigation_timeout_ms
            ):
                await page.locator(self.SELECTORS['submit_button']).click()
        except PlaywrightTimeout as e:
            reason = await self._get_login_error(page)
            if reason:
                raise AuthError(f"Login failed: {reason}") from e
            raise AuthError("Login timed out waiting for post-submit navigation") from e

    async def _get_login_error(self, page: Page) -> Optional[str]:
        """Visible error text on the login form, if any"""
        try:
            loc = page.locator(self.SELECTORS['login_error'])
            if await loc.count() > 0:
                text = await loc.first.text_content()
                return text.strip() if text else None
        except PlaywrightTimeout:
            return None
        return None
