"""
Configuration for the Insurance Toolkits quote scraper
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Insurance Toolkits URLs
LOGIN_URL = "https://insurancetoolkits.com/login"
QUOTE_URL = "https://app.insurancetoolkits.com/fex/quoter"
QUICK_QUOTE_URL = "https://app.insurancetoolkits.com/fex/quick-quoter"

PROVIDER_NAME = "InsuranceToolkits"

# Selectors for login
LOGIN_SELECTORS = {
    'email_input': 'input[name="email"]',
    'password_input': 'input[name="password"]',
    'submit_button': 'button[type="submit"]',
    'login_error': '.alert-danger, .error-message, .invalid-feedback, mat-error',
}

# Selectors for form filling (shared by the detailed and quick quoter)
SELECTORS = {
    'face_amount': 'input[formcontrolname="faceAmount"]',
    'premium': 'input[formcontrolname="premium"]',
    'form_container': 'form.quoter-form, itk-quoter form, itk-quick-quoter form',
    'coverage_type': 'itk-coverage-type-select[formcontrolname="coverageType"] select',
    'sex_male': 'itk-sex-picker button:first-child',
    'sex_female': 'itk-sex-picker button:nth-child(2)',
    'state': 'itk-state-select[formcontrolname="state"] select',
    'dob_month': 'input[formcontrolname="month"]',
    'dob_day': 'input[formcontrolname="day"]',
    'dob_year': 'input[formcontrolname="year"]',
    'age': 'input[formcontrolname="age"]',
    'height_feet': 'input[formcontrolname="feet"]',
    'height_inches': 'input[formcontrolname="inches"]',
    'weight': 'input[formcontrolname="weight"]',
    'tobacco': 'itk-nicotine-select[formcontrolname="tobacco"] select',
    'payment_type': 'itk-payment-type-select[formcontrolname="paymentType"] select',
    'conditions': 'input[placeholder="Enter Health Condition / Personal History"]',
    'medications': 'input[placeholder="Enter Medication"]',
    'get_quote_button': 'button:has-text("Get Quote")',
}

# Any of these means the quote form has rendered
FORM_READY_SELECTORS = [
    SELECTORS['face_amount'],
    SELECTORS['premium'],
    SELECTORS['form_container'],
]

# Selectors for data scraping
DATA_SELECTORS = {
    'detailed_panel': 'itk-included-quote-panel',
    'quick_panel': 'itk-quick-quote-panel, itk-included-quote-panel',
    'top_section': '.top-section-desktop',
    'bottom_section': '.bottom-section-desktop',
    'mobile_info': '.mobile .info',
    'compensation_icon': 'svg-icon[key="attach-money"]',
    'notice': '.notice, .warning, .alert',
}

# Logo filename fragment -> carrier name, matched in order
PROVIDER_LOGOS = [
    ('aflac', 'Aflac'),
    ('moo', 'Mutual of Omaha'),
    ('ahl', 'American Home Life'),
    ('securio', 'Securico'),
    ('transam', 'Transamerica'),
    ('security_national', 'Security National'),
    ('gtl', 'Guarantee Trust Life'),
    ('aig', 'AIG'),
    ('foresters', 'Foresters'),
    ('americo', 'Americo'),
    ('prosperity', 'Prosperity'),
]

# Substrings that identify a coverage category label
COVERAGE_KEYWORDS = [
    'Level',
    'Preferred',
    'Standard',
    'Graded',
    'Guaranteed',
    'Select',
    'Express',
    'Modified',
]
COVERAGE_LABEL_MAX_LENGTH = 50

# Quick quoter: a headline figure below this is a premium, otherwise a face amount
QUICK_QUOTE_FACE_AMOUNT_THRESHOLD = 1000

DEFAULT_TOBACCO = "None"

# Browser settings
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-blink-features=AutomationControlled",
]
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}

# Output settings
OUTPUT_FOLDER = 'output'
JSON_FILENAME = 'itk_quotes.json'
CSV_FILENAME = 'itk_quotes.csv'
LOG_FILENAME = 'scraper.log'


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip()
    return value if value != "" else default


def _env_bool(key: str, default: bool = False) -> bool:
    value = _env(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    value = _env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    value = _env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str = field(repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.email) and bool(self.password)


@dataclass(frozen=True)
class Settings:
    enabled: bool = False
    credentials: Optional[Credentials] = None

    login_url: str = LOGIN_URL
    quote_url: str = QUOTE_URL
    quick_quote_url: str = QUICK_QUOTE_URL

    session_ttl_seconds: float = 24 * 60 * 60

    headless: bool = True
    slow_mo: int = 0
    field_timeout_ms: int = 10000
    navigation_timeout_ms: int = 90000
    results_timeout_ms: int = 60000
    settle_max_ms: int = 3000
    settle_poll_ms: int = 500
    settle_stable_polls: int = 2
    typing_delay_ms: int = 50
    tag_commit_delay_ms: int = 500

    max_retries: int = 1
    retry_delay: float = 2.0

    output_folder: str = OUTPUT_FOLDER
    screenshots: bool = True


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Resolve settings once from the environment (and an optional .env file)"""
    load_dotenv(env_file)

    email = _env("INSURANCE_TOOLKITS_EMAIL", "") or ""
    password = _env("INSURANCE_TOOLKITS_PASSWORD", "") or ""
    credentials = Credentials(email, password) if (email or password) else None

    return Settings(
        enabled=_env("INSURANCE_TOOLKITS_ENABLED", "false") == "true",
        credentials=credentials,
        login_url=_env("INSURANCE_TOOLKITS_LOGIN_URL", LOGIN_URL) or LOGIN_URL,
        quote_url=_env("INSURANCE_TOOLKITS_QUOTE_URL", QUOTE_URL) or QUOTE_URL,
        quick_quote_url=_env("INSURANCE_TOOLKITS_QUICK_QUOTE_URL", QUICK_QUOTE_URL) or QUICK_QUOTE_URL,
        session_ttl_seconds=_env_float("INSURANCE_TOOLKITS_SESSION_TTL_HOURS", 24.0) * 60 * 60,
        headless=_env_bool("INSURANCE_TOOLKITS_HEADLESS", True),
        slow_mo=_env_int("INSURANCE_TOOLKITS_SLOW_MO", 0),
        field_timeout_ms=_env_int("INSURANCE_TOOLKITS_FIELD_TIMEOUT_MS", 10000),
        navigation_timeout_ms=_env_int("INSURANCE_TOOLKITS_NAV_TIMEOUT_MS", 90000),
        results_timeout_ms=_env_int("INSURANCE_TOOLKITS_RESULTS_TIMEOUT_MS", 60000),
        settle_max_ms=_env_int("INSURANCE_TOOLKITS_SETTLE_MAX_MS", 3000),
        settle_poll_ms=_env_int("INSURANCE_TOOLKITS_SETTLE_POLL_MS", 500),
        max_retries=_env_int("INSURANCE_TOOLKITS_MAX_RETRIES", 1),
        output_folder=_env("INSURANCE_TOOLKITS_OUTPUT_FOLDER", OUTPUT_FOLDER) or OUTPUT_FOLDER,
        screenshots=_env_bool("INSURANCE_TOOLKITS_SCREENSHOTS", True),
    )
