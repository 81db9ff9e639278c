"""
Request and result types exchanged with the quote scraper
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import PROVIDER_NAME

COVERAGE_TYPES = ["Level", "Graded/Modified", "Guaranteed", "Limited Pay", "SPWL"]
SEXES = ["Male", "Female"]


class FormVariant(str, Enum):
    DETAILED = "detailed"
    QUICK = "quick"


def safe_float(value: Any) -> Optional[float]:
    """Convert display amounts like '25,000' or '$41.87' into floats."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^\d.\-]", "", str(value))
    if cleaned in ("", "-", "."):
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value if str(item).strip()]


def format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


@dataclass
class DateOfBirth:
    month: str
    day: str
    year: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DateOfBirth":
        return cls(
            month=str(data["month"]).zfill(2),
            day=str(data["day"]).zfill(2),
            year=str(data["year"]),
        )


@dataclass
class HeightWeight:
    feet: Optional[str] = None
    inches: Optional[str] = None
    weight: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HeightWeight":
        def text(key):
            value = data.get(key)
            return None if value in (None, "") else str(value)

        return cls(feet=text("feet"), inches=text("inches"), weight=text("weight"))


@dataclass
class QuoteRequest:
    """A quote request already normalized by the validation layer"""

    coverage_type: str
    sex: str
    state: str
    face_amount: Optional[float] = None
    premium: Optional[float] = None
    age: Optional[int] = None
    dob: Optional[DateOfBirth] = None
    height_weight: Optional[HeightWeight] = None
    tobacco_use: Optional[str] = None
    payment_type: Optional[str] = None
    conditions: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuoteRequest":
        dob = data.get("dob")
        height_weight = data.get("heightWeight")
        age = data.get("age")

        return cls(
            coverage_type=data.get("coverageType"),
            sex=data.get("sex"),
            state=data.get("state"),
            face_amount=safe_float(data.get("faceAmount")),
            premium=safe_float(data.get("premium")),
            age=int(age) if age not in (None, "") else None,
            dob=DateOfBirth.from_dict(dob) if dob else None,
            height_weight=HeightWeight.from_dict(height_weight) if height_weight else None,
            tobacco_use=data.get("tobaccoUse") or None,
            payment_type=data.get("paymentType") or None,
            conditions=_as_list(data.get("conditions")),
            medications=_as_list(data.get("medications")),
        )

    def validate(self) -> "QuoteRequest":
        """Raise ValueError listing every broken invariant"""
        errors = []

        if self.face_amount is None and self.premium is None:
            errors.append("Provide either a faceAmount or a premium target.")
        if self.coverage_type not in COVERAGE_TYPES:
            errors.append(f"coverageType must be one of: {', '.join(COVERAGE_TYPES)}.")
        if self.sex not in SEXES:
            errors.append("sex must be Male or Female.")
        if not self.state or not re.fullmatch(r"[A-Z]{2}", self.state):
            errors.append("state must be a 2-letter state code (e.g. TX).")
        if (self.age is None) == (self.dob is None):
            errors.append("Provide exactly one of age or date of birth.")

        if errors:
            raise ValueError("; ".join(errors))
        return self

    def sizing(self) -> Tuple[str, float]:
        """The single authoritative sizing field for the form"""
        if self.face_amount is not None:
            return "faceAmount", self.face_amount
        return "premium", self.premium

    def sizing_text(self) -> str:
        return format_number(self.sizing()[1])


@dataclass
class QuoteRecord:
    provider: str
    product_name: Optional[str] = None
    coverage_type: Optional[str] = None
    monthly_premium: Optional[float] = None
    annual_premium: Optional[float] = None
    face_amount: Optional[float] = None
    underwriting_type: Optional[str] = None
    issue_age_range: Optional[str] = None
    ancillary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'productName': self.product_name,
            'coverageType': self.coverage_type,
            'monthlyPremium': self.monthly_premium,
            'annualPremium': self.annual_premium,
            'faceAmount': self.face_amount,
            'underwritingType': self.underwriting_type,
            'issueAgeRange': self.issue_age_range,
            'ancillary': dict(self.ancillary),
        }


def error_record(message: str, provider: str = PROVIDER_NAME, **diagnostics: Any) -> Dict[str, Any]:
    """The error-shaped quote record returned in place of results"""
    record = {
        'provider': provider,
        'error': True,
        'errorMessage': message,
    }
    record.update(diagnostics)
    return record


def is_error_record(record: Dict[str, Any]) -> bool:
    return bool(record.get('error'))
