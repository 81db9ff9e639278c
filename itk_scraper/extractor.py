"""
BeautifulSoup extraction of quote panels from the Insurance Toolkits results page.

Every field is read by an ordered chain of independent strategies; each
strategy returns None when it does not match and the first non-None value
wins. Falling through to the last strategy of a chain is logged so markup
drift on the target site shows up in the logs.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, FeatureNotFound, Tag
from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

from .config import (
    COVERAGE_KEYWORDS,
    COVERAGE_LABEL_MAX_LENGTH,
    DATA_SELECTORS,
    PROVIDER_LOGOS,
    QUICK_QUOTE_FACE_AMOUNT_THRESHOLD,
    Settings,
)
from .errors import ExtractionEmptyError, NavigationTimeoutError
from .models import FormVariant, QuoteRecord, QuoteRequest, safe_float
from .session import ActiveSession

log = logging.getLogger(__name__)

STRICT_PREMIUM = re.compile(r"^\$[\d,]*\d\.\d{2}$")
MONEY = re.compile(r"^\$[\d,]*\d(?:\.\d{2})?$")
ANNUAL_RATE = re.compile(r"Annual Rate:\s*\$?([\d,]+\.?\d*)", re.IGNORECASE)
ANNUAL_ANYWHERE = re.compile(r"Annual(?: Rate)?:?\s*\$([\d,]+\.\d{2})", re.IGNORECASE)
ACCIDENTAL_DEATH = re.compile(r"Accidental Death[^$]{0,40}\$([\d,]+\.\d{2})", re.IGNORECASE)
ISSUE_AGES = re.compile(r"Issue Ages?:?\s*(\d{1,3}\s*[-–]\s*\d{1,3})", re.IGNORECASE)
LOGO_FILENAME = re.compile(r"/?([^/?#]+)\.(png|jpe?g|svg|webp|gif)", re.IGNORECASE)
UNDERWRITING = re.compile(r"\b(Simplified Issue|Guaranteed Issue|Full Underwriting|Simplified|Guaranteed)\b", re.IGNORECASE)

Strategy = Tuple[str, Callable[[Tag], Optional[object]]]


@dataclass
class ParseResult:
    records: List[QuoteRecord]
    panel_count: int
    span_count: int


def text_of(element: Tag) -> str:
    return element.get_text(" ", strip=True) if element is not None else ""


def first_match(field: str, strategies: Sequence[Strategy], panel: Tag):
    """Run strategies in order and return the first non-None value"""
    last = len(strategies) - 1
    for index, (name, strategy) in enumerate(strategies):
        value = strategy(panel)
        if value is None:
            continue
        if index == last and last > 0:
            log.warning(f"{field}: primary strategies failed, used last-resort '{name}'")
        return value
    return None


def labeled_value(container: Optional[Tag], label: str) -> Optional[str]:
    """Text of the span right after a span whose text starts with `label`"""
    if container is None:
        return None
    spans = container.find_all("span")
    for index, span in enumerate(spans):
        if text_of(span).lower().startswith(label.lower()):
            if index + 1 < len(spans):
                value = text_of(spans[index + 1])
                return value or None
            return None
    return None


# ---------------------------------------------------------------------------
# provider
# ---------------------------------------------------------------------------
def _logo_src(panel: Tag) -> Optional[str]:
    img = panel.find("img")
    if img is None:
        return None
    return img.get("src") or None


def _logo_basename(src: str) -> str:
    match = LOGO_FILENAME.search(src.rsplit("/", 1)[-1])
    return match.group(1) if match else src


def provider_from_logo_table(panel: Tag) -> Optional[str]:
    src = _logo_src(panel)
    if not src:
        return None
    name = _logo_basename(src).lower()
    for fragment, provider in PROVIDER_LOGOS:
        if fragment in name:
            return provider
    return None


def provider_from_logo_filename(panel: Tag) -> Optional[str]:
    src = _logo_src(panel)
    if not src:
        return None
    match = LOGO_FILENAME.search(src)
    if not match:
        return None
    words = match.group(1).replace("_", " ").replace("-", " ").split()
    if not words:
        return None
    return " ".join(word[:1].upper() + word[1:] for word in words)


PROVIDER_STRATEGIES: List[Strategy] = [
    ("logo table", provider_from_logo_table),
    ("logo filename", provider_from_logo_filename),
    ("unknown", lambda panel: "Unknown"),
]


# ---------------------------------------------------------------------------
# premiums and headline figures
# ---------------------------------------------------------------------------
def _section(panel: Tag, key: str) -> Optional[Tag]:
    return panel.select_one(DATA_SELECTORS[key])


def _first_text(elements, pattern: re.Pattern) -> Optional[str]:
    for element in elements:
        text = text_of(element)
        if text and pattern.match(text):
            return text
    return None


def premium_from_top_section(panel: Tag) -> Optional[float]:
    top = _section(panel, 'top_section')
    if top is None:
        return None
    return safe_float(_first_text(top.find_all("div"), STRICT_PREMIUM))


def premium_from_panel(panel: Tag) -> Optional[float]:
    return safe_float(_first_text(panel.find_all(["div", "span"]), STRICT_PREMIUM))


MONTHLY_PREMIUM_STRATEGIES: List[Strategy] = [
    ("top section", premium_from_top_section),
    ("any element", premium_from_panel),
]


def figure_from_top_section(panel: Tag) -> Optional[float]:
    top = _section(panel, 'top_section')
    if top is None:
        return None
    return safe_float(_first_text(top.find_all("div"), MONEY))


def figure_from_panel(panel: Tag) -> Optional[float]:
    return safe_float(_first_text(panel.find_all(["div", "span"]), MONEY))


QUICK_FIGURE_STRATEGIES: List[Strategy] = [
    ("top section", figure_from_top_section),
    ("any element", figure_from_panel),
]


# ---------------------------------------------------------------------------
# coverage label
# ---------------------------------------------------------------------------
def _coverage_label(elements) -> Optional[str]:
    for element in elements:
        text = text_of(element)
        if not text or len(text) >= COVERAGE_LABEL_MAX_LENGTH:
            continue
        if any(keyword in text for keyword in COVERAGE_KEYWORDS):
            return text
    return None


def coverage_from_top_section(panel: Tag) -> Optional[str]:
    top = _section(panel, 'top_section')
    if top is None:
        return None
    return _coverage_label(top.find_all("div"))


def coverage_from_panel(panel: Tag) -> Optional[str]:
    return _coverage_label(panel.find_all(["div", "span"]))


COVERAGE_STRATEGIES: List[Strategy] = [
    ("top section", coverage_from_top_section),
    ("any element", coverage_from_panel),
]


# ---------------------------------------------------------------------------
# secondary figures
# ---------------------------------------------------------------------------
def annual_from_bottom_section(panel: Tag) -> Optional[float]:
    bottom = _section(panel, 'bottom_section')
    if bottom is None:
        return None
    match = ANNUAL_RATE.search(text_of(bottom))
    return safe_float(match.group(1)) if match else None


def annual_from_mobile_label(panel: Tag) -> Optional[float]:
    value = labeled_value(_section(panel, 'mobile_info'), "Annual")
    return safe_float(value) if value else None


def annual_from_panel_text(panel: Tag) -> Optional[float]:
    match = ANNUAL_ANYWHERE.search(text_of(panel))
    return safe_float(match.group(1)) if match else None


ANNUAL_PREMIUM_STRATEGIES: List[Strategy] = [
    ("bottom section", annual_from_bottom_section),
    ("mobile label", annual_from_mobile_label),
    ("panel text", annual_from_panel_text),
]


def accidental_death_from_label(panel: Tag) -> Optional[float]:
    value = labeled_value(panel, "Accidental Death")
    return safe_float(value) if value else None


def accidental_death_from_text(panel: Tag) -> Optional[float]:
    match = ACCIDENTAL_DEATH.search(text_of(panel))
    return safe_float(match.group(1)) if match else None


ACCIDENTAL_DEATH_STRATEGIES: List[Strategy] = [
    ("label pair", accidental_death_from_label),
    ("panel text", accidental_death_from_text),
]


def issue_ages_from_label(panel: Tag) -> Optional[str]:
    return labeled_value(panel, "Issue Age")


def issue_ages_from_text(panel: Tag) -> Optional[str]:
    match = ISSUE_AGES.search(text_of(panel))
    return match.group(1) if match else None


ISSUE_AGE_STRATEGIES: List[Strategy] = [
    ("label pair", issue_ages_from_label),
    ("panel text", issue_ages_from_text),
]


def underwriting_from_label(panel: Tag) -> Optional[str]:
    return labeled_value(panel, "Underwriting")


def underwriting_from_text(panel: Tag) -> Optional[str]:
    match = UNDERWRITING.search(text_of(panel))
    return match.group(1) if match else None


UNDERWRITING_STRATEGIES: List[Strategy] = [
    ("label pair", underwriting_from_label),
    ("panel text", underwriting_from_text),
]


def compensation_info(panel: Tag) -> Optional[str]:
    """Text next to the green money icon, walking up until a sibling has it"""
    icon = panel.select_one(DATA_SELECTORS['compensation_icon'])
    if icon is None:
        return None

    current = icon.parent
    while current is not None and current is not panel:
        sibling = current.find_next_sibling()
        if sibling is not None:
            text = text_of(sibling)
            lowered = text.lower()
            if len(text) > 10 and ("commission" in lowered or "cut" in lowered or "%" in text):
                return text
        current = current.parent
    return None


def plan_info(panel: Tag) -> Optional[str]:
    """Year-by-year benefit notes from the mobile info block, joined with ' | '"""
    info = _section(panel, 'mobile_info')
    if info is None:
        return None

    details = []
    for span in info.find_all("span"):
        text = text_of(span)
        if text and (text.startswith("Year") or "ROP" in text):
            details.append(text)
        elif details and text and "face amount" in text:
            details.append(text)
        elif details and (not text or len(text) > 50):
            break

    return " | ".join(details) if details else None


def notices(panel: Tag) -> Optional[List[str]]:
    found = [text_of(el) for el in panel.select(DATA_SELECTORS['notice'])]
    found = [text for text in found if text]
    return found or None


# ---------------------------------------------------------------------------
# panel parsing
# ---------------------------------------------------------------------------
def _ancillary(panel: Tag) -> dict:
    extras = {
        'compensationInfo': compensation_info(panel),
        'planInfo': plan_info(panel),
        'accidentalDeathPremium': first_match("accidental death", ACCIDENTAL_DEATH_STRATEGIES, panel),
        'notices': notices(panel),
    }
    return {key: value for key, value in extras.items() if value is not None}


def parse_detailed_panel(panel: Tag) -> Optional[QuoteRecord]:
    monthly = first_match("monthly premium", MONTHLY_PREMIUM_STRATEGIES, panel)
    if monthly is None:
        return None

    coverage = first_match("coverage type", COVERAGE_STRATEGIES, panel)
    return QuoteRecord(
        provider=first_match("provider", PROVIDER_STRATEGIES, panel),
        product_name=coverage or "Unknown Plan",
        coverage_type=coverage,
        monthly_premium=monthly,
        annual_premium=first_match("annual premium", ANNUAL_PREMIUM_STRATEGIES, panel),
        face_amount=None,
        underwriting_type=first_match("underwriting", UNDERWRITING_STRATEGIES, panel),
        issue_age_range=first_match("issue ages", ISSUE_AGE_STRATEGIES, panel),
        ancillary=_ancillary(panel),
    )


def parse_quick_panel(panel: Tag, request: QuoteRequest) -> Optional[QuoteRecord]:
    """
    The quick quoter shows one headline figure whose meaning depends on the
    request: a monthly premium for face-amount requests, an implied face
    amount for premium-target requests. The magnitude split below is an
    approximation of that behaviour, not a documented contract. Panels whose
    figure does not fit the request's polarity are dropped.
    """
    figure = first_match("quick figure", QUICK_FIGURE_STRATEGIES, panel)
    if figure is None:
        return None

    premium_driven = request.face_amount is None
    shows_face_amount = figure >= QUICK_QUOTE_FACE_AMOUNT_THRESHOLD
    if premium_driven != shows_face_amount:
        kind = "face amount" if shows_face_amount else "premium"
        sizing = "premium" if premium_driven else "face amount"
        log.debug(f"Quick panel shows {kind} {figure} on a {sizing} request; dropped")
        return None

    if premium_driven:
        monthly, face_amount = request.premium, figure
    else:
        monthly, face_amount = figure, None

    coverage = first_match("coverage type", COVERAGE_STRATEGIES, panel)
    return QuoteRecord(
        provider=first_match("provider", PROVIDER_STRATEGIES, panel),
        product_name=coverage or "Unknown Plan",
        coverage_type=coverage,
        monthly_premium=monthly,
        annual_premium=first_match("annual premium", ANNUAL_PREMIUM_STRATEGIES, panel),
        face_amount=face_amount,
        underwriting_type=first_match("underwriting", UNDERWRITING_STRATEGIES, panel),
        issue_age_range=first_match("issue ages", ISSUE_AGE_STRATEGIES, panel),
        ancillary=_ancillary(panel),
    )


def make_soup(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, 'lxml')
    except FeatureNotFound:
        log.warning("lxml parser unavailable, falling back to html.parser")
        return BeautifulSoup(html, 'html.parser')


def panel_selector(variant: FormVariant) -> str:
    if variant == FormVariant.QUICK:
        return DATA_SELECTORS['quick_panel']
    return DATA_SELECTORS['detailed_panel']


def parse_results(html: str, variant: FormVariant, request: QuoteRequest) -> ParseResult:
    """Parse every result panel; panels without a usable premium are skipped"""
    soup = make_soup(html)
    panels = soup.select(panel_selector(variant))
    span_count = len(soup.find_all("span"))

    records = []
    for index, panel in enumerate(panels):
        try:
            if variant == FormVariant.QUICK:
                record = parse_quick_panel(panel, request)
            else:
                record = parse_detailed_panel(panel)
        except (AttributeError, ValueError, TypeError) as e:
            log.warning(f"Error parsing quote panel {index + 1}: {e}")
            continue

        if record is None:
            log.debug(f"Panel {index + 1} has no interpretable premium; skipped")
            continue
        records.append(record)

    log.info(f"Parsed {len(records)} quote(s) from {len(panels)} panel(s)")
    return ParseResult(records=records, panel_count=len(panels), span_count=span_count)


class QuoteExtractor:
    """Waits for the results surface, lets it settle, then parses it"""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def extract(
        self, active: ActiveSession, variant: FormVariant, request: QuoteRequest
    ) -> List[QuoteRecord]:
        page = active.page
        selector = panel_selector(variant)

        log.info("Waiting for quote results to appear...")
        try:
            await page.wait_for_selector(selector, timeout=self.settings.results_timeout_ms)
        except PlaywrightTimeout as e:
            raise NavigationTimeoutError(f"Quote results did not appear at {page.url}") from e

        await self.settle(page, selector)

        log.info("Extracting quotes...")
        result = parse_results(await page.content(), variant, request)
        if not result.records:
            raise ExtractionEmptyError(result.panel_count, result.span_count)

        log.info(f"Found {len(result.records)} quote(s) from Insurance Toolkits")
        return result.records

    async def settle(self, page: Page, selector: str) -> bool:
        """
        Poll until the panel count and document size stop changing, capped
        at settle_max_ms. Returns False when the cap was reached.
        """
        if self.settings.settle_max_ms <= 0:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.settle_max_ms / 1000
        interval = self.settings.settle_poll_ms / 1000
        previous = None
        stable = 0

        while loop.time() < deadline:
            snapshot = (await page.locator(selector).count(), len(await page.content()))
            if snapshot == previous:
                stable += 1
                if stable >= self.settings.settle_stable_polls:
                    return True
            else:
                previous = snapshot
                stable = 0
            await asyncio.sleep(interval)

        log.debug("Results still changing when the settle cap was reached")
        return False
