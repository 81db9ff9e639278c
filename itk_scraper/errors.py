"""
Exception types raised by the quote scraper and their classification
"""

import re
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeout


class ScraperError(Exception):
    """Base class for every failure the scraper raises on purpose"""


class ConfigError(ScraperError):
    """Credentials or URLs are missing. Fatal and never retried."""


class AuthError(ScraperError):
    """The login form or the post-login navigation failed"""


class FormNotFoundError(ScraperError):
    """The quote form controls never rendered"""

    def __init__(self, url: str, title: str = ""):
        self.url = url
        self.title = title
        super().__init__(f"Quote form not found at {url} (title: {title!r})")


class NavigationTimeoutError(ScraperError):
    """A navigation or selector wait ran out of time"""


class ShutdownError(ScraperError):
    """The browser was closed for shutdown; no new run is started"""


class ExtractionEmptyError(ScraperError):
    """The results page rendered but no quote could be parsed from it"""

    def __init__(self, panel_count: int, span_count: int, message: Optional[str] = None):
        self.panel_count = panel_count
        self.span_count = span_count
        super().__init__(
            message
            or (
                "No quotes found on results page - form may have validation errors "
                f"or no carriers available (panels={panel_count}, spans={span_count})"
            )
        )

    @property
    def diagnostics(self) -> dict:
        return {'panelCount': self.panel_count, 'spanCount': self.span_count}


# Message vocabulary that points at an expired or rejected session
SESSION_VOCABULARY = re.compile(r"session|log ?in|auth|navigat", re.IGNORECASE)

# Typed errors that say nothing about the session's health
_SESSION_NEUTRAL = (ConfigError, FormNotFoundError, ExtractionEmptyError, ShutdownError)


def classify_error(error: BaseException) -> str:
    """Return the taxonomy name for any exception reaching the facade"""
    if isinstance(error, ScraperError):
        return type(error).__name__
    if isinstance(error, (PlaywrightTimeout, TimeoutError)):
        return NavigationTimeoutError.__name__
    return type(error).__name__


def invalidates_session(error: BaseException) -> bool:
    """Whether the failure should force a fresh login on the next run"""
    if isinstance(error, _SESSION_NEUTRAL):
        return False
    if isinstance(error, (AuthError, NavigationTimeoutError, PlaywrightTimeout, TimeoutError)):
        return True
    return bool(SESSION_VOCABULARY.search(str(error)))
