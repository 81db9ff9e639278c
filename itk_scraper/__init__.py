"""
Insurance Toolkits quote scraper
"""

from .config import Settings, load_settings
from .errors import (
    AuthError,
    ConfigError,
    ExtractionEmptyError,
    FormNotFoundError,
    NavigationTimeoutError,
    ScraperError,
    ShutdownError,
)
from .models import FormVariant, QuoteRecord, QuoteRequest
from .quoter import InsuranceToolkitsQuoter

__all__ = [
    "AuthError",
    "ConfigError",
    "ExtractionEmptyError",
    "FormNotFoundError",
    "FormVariant",
    "InsuranceToolkitsQuoter",
    "NavigationTimeoutError",
    "QuoteRecord",
    "QuoteRequest",
    "ScraperError",
    "Settings",
    "ShutdownError",
    "load_settings",
]
