"""
Quote form automation for the detailed and quick Insurance Toolkits quoters
"""

import logging
from contextlib import asynccontextmanager
from typing import List

from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

from .config import DEFAULT_TOBACCO, FORM_READY_SELECTORS, SELECTORS, Settings
from .errors import AuthError, FormNotFoundError, NavigationTimeoutError
from .models import FormVariant, QuoteRequest
from .session import ActiveSession

log = logging.getLogger(__name__)


def is_login_redirect(url: str) -> bool:
    return "login" in (url or "").lower()


class FormSequencer:
    """Maps a QuoteRequest onto the quoter form and submits it"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def url_for(self, variant: FormVariant) -> str:
        if variant == FormVariant.QUICK:
            return self.settings.quick_quote_url
        return self.settings.quote_url

    async def fill(self, active: ActiveSession, request: QuoteRequest, variant: FormVariant) -> None:
        """Navigate, populate every field in order, then submit"""
        page = await self.open_form(active, variant)

        log.info(f"Filling {variant.value} quote form...")
        await self.fill_fields(page, request, variant)

        log.info("Submitting form...")
        await self.submit(page, variant)

    async def open_form(self, active: ActiveSession, variant: FormVariant) -> Page:
        """Navigate to the quoter, re-logging in once if bounced to the login page"""
        url = self.url_for(variant)
        page = active.page

        await self._navigate(page, url)
        if is_login_redirect(page.url):
            log.warning(f"Redirected to login ({page.url}); session is no longer valid")
            page = await active.reauthenticate()
            await self._navigate(page, url)
            if is_login_redirect(page.url):
                raise AuthError(f"Still redirected to login after re-authentication: {page.url}")

        await self.wait_for_form(page)
        return page

    async def _navigate(self, page: Page, url: str) -> None:
        log.info(f"Navigating to quote page: {url}")
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.settings.navigation_timeout_ms)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"Navigation to {url} timed out") from e

    async def wait_for_form(self, page: Page) -> None:
        """Wait once for whichever form-ready signal shows up first"""
        try:
            await page.wait_for_selector(
                ", ".join(FORM_READY_SELECTORS), timeout=self.settings.field_timeout_ms
            )
        except PlaywrightTimeout as e:
            title = ""
            try:
                title = await page.title()
            except Exception as title_error:
                log.debug(f"Could not read page title: {title_error}")
            raise FormNotFoundError(page.url, title) from e

    async def fill_fields(self, page: Page, request: QuoteRequest, variant: FormVariant) -> None:
        sizing_field, _ = request.sizing()
        sizing_selector = SELECTORS['face_amount'] if sizing_field == "faceAmount" else SELECTORS['premium']
        await self.clear_and_type(page, sizing_selector, request.sizing_text(), sizing_field)

        await self.select(page, SELECTORS['coverage_type'], request.coverage_type, "coverage type")

        sex_selector = SELECTORS['sex_male'] if request.sex == "Male" else SELECTORS['sex_female']
        async with self._step("sex"):
            await page.locator(sex_selector).click(timeout=self.settings.field_timeout_ms)

        await self.select(page, SELECTORS['state'], request.state, "state")

        if request.dob is not None:
            await self.clear_and_type(page, SELECTORS['dob_month'], request.dob.month, "birth month")
            await self.clear_and_type(page, SELECTORS['dob_day'], request.dob.day, "birth day")
            await self.clear_and_type(page, SELECTORS['dob_year'], request.dob.year, "birth year")
        elif request.age is not None:
            await self.clear_and_type(page, SELECTORS['age'], str(request.age), "age")

        hw = request.height_weight
        if hw is not None:
            if hw.feet:
                await self.clear_and_type(page, SELECTORS['height_feet'], hw.feet, "height (feet)")
            if hw.inches:
                await self.clear_and_type(page, SELECTORS['height_inches'], hw.inches, "height (inches)")
            if hw.weight:
                await self.clear_and_type(page, SELECTORS['weight'], hw.weight, "weight")

        # the form rejects submission without a nicotine selection
        tobacco = request.tobacco_use or DEFAULT_TOBACCO
        await self.select(page, SELECTORS['tobacco'], tobacco, "tobacco use")

        if request.payment_type:
            await self.select(page, SELECTORS['payment_type'], request.payment_type, "payment type")

        if variant == FormVariant.DETAILED:
            await self.add_tags(page, SELECTORS['conditions'], request.conditions, "health condition")
            await self.add_tags(page, SELECTORS['medications'], request.medications, "medication")

    async def clear_and_type(self, page: Page, selector: str, value: str, label: str) -> None:
        """Select-all, delete, then type so stale values never concatenate"""
        async with self._step(label):
            await page.wait_for_selector(selector, timeout=self.settings.field_timeout_ms)
            field = page.locator(selector)
            await field.click(click_count=3)
            await page.keyboard.press("Backspace")
            await field.press_sequentially(str(value))

    async def select(self, page: Page, selector: str, value: str, label: str) -> None:
        async with self._step(label):
            await page.select_option(selector, value, timeout=self.settings.field_timeout_ms)

    async def add_tags(self, page: Page, selector: str, values: List[str], label: str) -> None:
        """The tag input accepts one entry per Enter"""
        if not values:
            return
        async with self._step(label):
            field = page.locator(selector)
            for value in values:
                await field.press_sequentially(value)
                await page.keyboard.press("Enter")
                await page.wait_for_timeout(self.settings.tag_commit_delay_ms)
        log.info(f"Added {len(values)} {label} tag(s)")

    async def submit(self, page: Page, variant: FormVariant) -> None:
        """Click Get Quote; the quick quoter navigates, the detailed one re-renders in place"""
        button = page.locator(SELECTORS['get_quote_button']).first

        if variant == FormVariant.QUICK:
            try:
                async with page.expect_navigation(
                    wait_until="networkidle", timeout=self.settings.navigation_timeout_ms
                ):
                    await button.click(timeout=self.settings.field_timeout_ms)
            except PlaywrightTimeout as e:
                raise NavigationTimeoutError("Quick quote submission did not navigate to results") from e
            return

        async with self._step("Get Quote button"):
            await button.click(timeout=self.settings.field_timeout_ms)

    @asynccontextmanager
    async def _step(self, label: str):
        try:
            yield
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"Timed out waiting for {label} field") from e
