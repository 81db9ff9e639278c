"""Pytest configuration and a scripted fake of the Insurance Toolkits site."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeout

from itk_scraper.config import (
    DATA_SELECTORS,
    FORM_READY_SELECTORS,
    LOGIN_SELECTORS,
    LOGIN_URL,
    QUICK_QUOTE_URL,
    QUOTE_URL,
    SELECTORS,
    Credentials,
    Settings,
)

EMAIL = "agent@example.com"
PASSWORD = "correct-horse"

DASHBOARD_URL = "https://app.insurancetoolkits.com/dashboard"
QUICK_RESULTS_URL = QUICK_QUOTE_URL + "/results"


def detailed_panel(
    premium: str = "$41.87",
    plan: str = "Level",
    logo: str = "moo",
    annual: str = "$480.12",
) -> str:
    logo_img = f'<img src="https://app.insurancetoolkits.com/assets/carriers/{logo}.png">' if logo else ""
    return f"""
    <itk-included-quote-panel>
      <div class="top-section-desktop">
        <div class="logo">{logo_img}</div>
        <div class="premium">{premium}</div>
        <div class="plan">{plan}</div>
        <div class="comp">
          <div class="icon"><svg-icon key="attach-money"></svg-icon></div>
          <div class="text">Agent commission 100% first year</div>
        </div>
      </div>
      <div class="bottom-section-desktop"><span>Annual Rate: {annual}</span></div>
      <div class="mobile"><div class="info">
        <span>Annual</span><span>{annual}</span>
        <span>Year 1: 30% face amount</span>
        <span>Year 2: 70% face amount</span>
        <span>Year 3+: 100% face amount</span>
      </div></div>
    </itk-included-quote-panel>
    """


def quick_panel(figure: str, plan: str = "Level", logo: str = "aflac") -> str:
    return f"""
    <itk-quick-quote-panel>
      <div class="top-section-desktop">
        <div class="logo"><img src="/assets/carriers/{logo}.png"></div>
        <div class="figure">{figure}</div>
        <div class="plan">{plan}</div>
      </div>
    </itk-quick-quote-panel>
    """


def empty_panel() -> str:
    return """
    <itk-included-quote-panel>
      <div class="top-section-desktop"><div>Call for pricing</div></div>
      <span>Unavailable in your state</span>
    </itk-included-quote-panel>
    """


def results_page(*panels: str) -> str:
    return "<html><body><div class='results'>" + "".join(panels) + "</div></body></html>"


FORM_PAGE = "<html><body><form class='quoter-form'><input formcontrolname='faceAmount'></form></body></html>"
LOGIN_PAGE = "<html><body><form><input name='email'><input name='password'></form></body></html>"

LOGIN_FIELDS = set(LOGIN_SELECTORS.values())
PANEL_SELECTORS = {DATA_SELECTORS['detailed_panel'], DATA_SELECTORS['quick_panel']}


class FakeSite:
    """Server-side state shared by every fake page"""

    def __init__(self):
        self.email = EMAIL
        self.password = PASSWORD
        self.logged_in = False
        self.login_count = 0
        self.navigations: List[str] = []
        self.actions: List[tuple] = []

        self.form_missing = False
        self.results_render = True
        self.goto_timeouts = 0
        self.results_html = results_page(detailed_panel())

    def expire_session(self):
        self.logged_in = False

    def form_actions(self) -> List[tuple]:
        """Actions taken on the quote form, login typing excluded"""
        return [a for a in self.actions if a[0] != "login"]


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self.page = page

    async def press(self, key: str):
        self.page.site.actions.append(("press", key))


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str):
        self.page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    async def count(self) -> int:
        if self.selector == LOGIN_SELECTORS['login_error']:
            return 1 if self.page.login_error else 0
        if self.selector in PANEL_SELECTORS and self.page.kind == "results":
            return self.page.site.results_html.count("<itk-")
        return 1 if self.page.visible(self.selector) else 0

    async def text_content(self) -> Optional[str]:
        if self.selector == LOGIN_SELECTORS['login_error']:
            return self.page.login_error
        return None

    async def click(self, click_count: int = 1, timeout: Optional[int] = None):
        self.page.require(self.selector)
        site = self.page.site

        if self.selector == LOGIN_SELECTORS['submit_button']:
            self.page.submit_login()
        elif self.selector == SELECTORS['get_quote_button']:
            site.actions.append(("submit",))
            self.page.show_results()
        else:
            site.actions.append(("click", self.selector, click_count))

    async def press_sequentially(self, text: str, delay: Optional[float] = None):
        self.page.require(self.selector)
        if self.selector in LOGIN_FIELDS:
            self.page.typed[self.selector] = text
            self.page.site.actions.append(("login", self.selector))
        else:
            self.page.site.actions.append(("type", self.selector, text))


class FakePage:
    """Just enough of playwright's Page to drive login, forms and results"""

    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.kind = "blank"
        self.closed = False
        self.keyboard = FakeKeyboard(self)
        self.typed = {}
        self.login_error: Optional[str] = None
        self._navigated = False
        self.screenshots: List[str] = []

    # navigation -----------------------------------------------------------
    async def goto(self, url: str, wait_until: str = "load", timeout: Optional[int] = None):
        self.site.navigations.append(url)
        if self.site.goto_timeouts > 0 and url != LOGIN_URL:
            self.site.goto_timeouts -= 1
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded navigating to {url}")

        if url == LOGIN_URL:
            self._set(LOGIN_URL, "login")
        elif url in (QUOTE_URL, QUICK_QUOTE_URL):
            if not self.site.logged_in:
                self._set(LOGIN_URL + "?returnUrl=%2Ffex", "login")
            else:
                self._set(url, "form")
        else:
            self._set(url, "blank")

    def _set(self, url: str, kind: str):
        self.url = url
        self.kind = kind
        self._navigated = True

    @asynccontextmanager
    async def expect_navigation(self, wait_until: str = "load", timeout: Optional[int] = None):
        self._navigated = False
        yield
        if not self._navigated:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for navigation")

    def submit_login(self):
        email = self.typed.get(LOGIN_SELECTORS['email_input'])
        password = self.typed.get(LOGIN_SELECTORS['password_input'])
        if email == self.site.email and password == self.site.password:
            self.site.logged_in = True
            self.site.login_count += 1
            self.login_error = None
            self._set(DASHBOARD_URL, "dashboard")
        else:
            self.login_error = "Invalid email or password"

    def show_results(self):
        if self.url == QUICK_QUOTE_URL:
            self._set(QUICK_RESULTS_URL, "results")
        else:
            self.kind = "results"

    # element access -------------------------------------------------------
    def visible(self, selector: str) -> bool:
        if self.kind == "login":
            return selector in LOGIN_FIELDS
        if self.kind == "form":
            return not self.site.form_missing and selector not in PANEL_SELECTORS
        if self.kind == "results":
            if selector in PANEL_SELECTORS:
                return self.site.results_render
            return True
        return False

    def require(self, selector: str):
        if not self.visible(selector):
            raise PlaywrightTimeout(f"Timeout exceeded waiting for locator({selector!r})")

    async def wait_for_selector(self, selector: str, timeout: Optional[int] = None):
        if selector == ", ".join(FORM_READY_SELECTORS):
            selector = FORM_READY_SELECTORS[0]
        self.require(selector)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    async def select_option(self, selector: str, value: str, timeout: Optional[int] = None):
        self.require(selector)
        self.site.actions.append(("select", selector, value))

    async def wait_for_timeout(self, ms: float):
        self.site.actions.append(("pause", ms))

    async def content(self) -> str:
        if self.kind == "results":
            return self.site.results_html
        if self.kind == "form":
            return FORM_PAGE
        if self.kind == "login":
            return LOGIN_PAGE
        return "<html><body></body></html>"

    async def title(self) -> str:
        return "Insurance Toolkits"

    async def screenshot(self, path: str, full_page: bool = False):
        self.screenshots.append(path)

    def is_closed(self) -> bool:
        return self.closed

    async def close(self):
        self.closed = True


class FakeBrowserManager:
    """Stands in for BrowserManager without launching Chromium"""

    def __init__(self, site: FakeSite):
        self.site = site
        self._page: Optional[FakePage] = None
        self.starts = 0
        self.closes = 0

    @property
    def page(self) -> Optional[FakePage]:
        return self._page

    @property
    def is_connected(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    async def start(self) -> FakePage:
        if self.is_connected:
            return self._page
        self.starts += 1
        self._page = FakePage(self.site)
        return self._page

    async def close(self):
        self.closes += 1
        if self._page is not None:
            await self._page.close()
        self._page = None


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_settings(output_folder: Path, **overrides) -> Settings:
    values = dict(
        enabled=True,
        credentials=Credentials(EMAIL, PASSWORD),
        field_timeout_ms=10,
        navigation_timeout_ms=10,
        results_timeout_ms=10,
        settle_max_ms=0,
        settle_poll_ms=1,
        typing_delay_ms=0,
        tag_commit_delay_ms=0,
        retry_delay=0,
        output_folder=str(output_folder),
        screenshots=False,
    )
    values.update(overrides)
    return Settings(**values)


SCENARIO_REQUEST = {
    "faceAmount": 25000,
    "coverageType": "Level",
    "sex": "Male",
    "state": "TX",
    "age": 55,
    "tobaccoUse": "None",
}


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path / "output")


@pytest.fixture
def scenario_request() -> dict:
    return dict(SCENARIO_REQUEST)
