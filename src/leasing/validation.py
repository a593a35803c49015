from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .errors import LeaseErrorCode
from .models import (
    MAX_CROP_SHARE_PERCENTAGE,
    MAX_GRACE_PERIOD,
    MAX_LEASE_DURATION,
    MAX_LOCATION_LENGTH,
    CropType,
    Currency,
)


@dataclass(frozen=True)
class LeaseTerms:
    """Caller-supplied creation parameters, unvalidated."""

    land_id: Any
    farmer: Any
    duration: Any
    rent_amount: Any
    payment_frequency: Any
    crop_share_percentage: Any
    crop_type: Any
    termination_fee: Any
    grace_period: Any
    location: Any
    currency: Any
    min_rent: Any
    max_duration: Any


TermsPredicate = Callable[[LeaseTerms, str], bool]


@dataclass(frozen=True)
class TermsRule:
    code: LeaseErrorCode
    field_name: str
    predicate: TermsPredicate


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_positive_integer(value: Any) -> bool:
    return is_integer(value) and value > 0


def is_valid_duration(value: Any) -> bool:
    return is_positive_integer(value) and value <= MAX_LEASE_DURATION


def _in_range(value: Any, *, upper: int) -> bool:
    return is_integer(value) and 0 <= value <= upper


def parse_crop_type(value: Any) -> CropType | None:
    if isinstance(value, CropType):
        return value
    if not isinstance(value, str):
        return None
    try:
        return CropType(value)
    except ValueError:
        return None


def parse_currency(value: Any) -> Currency | None:
    if isinstance(value, Currency):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Currency(value)
    except ValueError:
        return None


def _valid_location(value: Any) -> bool:
    return isinstance(value, str) and 0 < len(value) <= MAX_LOCATION_LENGTH


def _valid_farmer(terms: LeaseTerms, caller: str) -> bool:
    return isinstance(terms.farmer, str) and bool(terms.farmer) and terms.farmer != caller


# Evaluated in order; the first failing rule decides the error code.
TERMS_RULES: tuple[TermsRule, ...] = (
    TermsRule(LeaseErrorCode.INVALID_LAND_ID, "land_id", lambda t, _c: is_positive_integer(t.land_id)),
    TermsRule(LeaseErrorCode.INVALID_FARMER, "farmer", _valid_farmer),
    TermsRule(LeaseErrorCode.INVALID_DURATION, "duration", lambda t, _c: is_valid_duration(t.duration)),
    TermsRule(
        LeaseErrorCode.INVALID_RENT_AMOUNT,
        "rent_amount",
        lambda t, _c: is_positive_integer(t.rent_amount),
    ),
    TermsRule(
        LeaseErrorCode.INVALID_PAYMENT_FREQUENCY,
        "payment_frequency",
        lambda t, _c: is_positive_integer(t.payment_frequency),
    ),
    TermsRule(
        LeaseErrorCode.INVALID_CROP_SHARE,
        "crop_share_percentage",
        lambda t, _c: _in_range(t.crop_share_percentage, upper=MAX_CROP_SHARE_PERCENTAGE),
    ),
    TermsRule(
        LeaseErrorCode.INVALID_CROP_TYPE,
        "crop_type",
        lambda t, _c: parse_crop_type(t.crop_type) is not None,
    ),
    TermsRule(
        LeaseErrorCode.INVALID_TERMINATION_FEE,
        "termination_fee",
        lambda t, _c: is_integer(t.termination_fee) and t.termination_fee >= 0,
    ),
    TermsRule(
        LeaseErrorCode.INVALID_GRACE_PERIOD,
        "grace_period",
        lambda t, _c: _in_range(t.grace_period, upper=MAX_GRACE_PERIOD),
    ),
    TermsRule(LeaseErrorCode.INVALID_LOCATION, "location", lambda t, _c: _valid_location(t.location)),
    TermsRule(
        LeaseErrorCode.INVALID_CURRENCY,
        "currency",
        lambda t, _c: parse_currency(t.currency) is not None,
    ),
    TermsRule(LeaseErrorCode.INVALID_MIN_RENT, "min_rent", lambda t, _c: is_positive_integer(t.min_rent)),
    TermsRule(
        LeaseErrorCode.INVALID_MAX_DURATION,
        "max_duration",
        lambda t, _c: is_positive_integer(t.max_duration),
    ),
)


def find_failing_rule(terms: LeaseTerms, *, caller: str) -> TermsRule | None:
    for rule in TERMS_RULES:
        if not rule.predicate(terms, caller):
            return rule
    return None


def validate_lease_terms(terms: LeaseTerms, *, caller: str) -> LeaseErrorCode | None:
    rule = find_failing_rule(terms, caller=caller)
    return None if rule is None else rule.code


def validate_update_terms(update_duration: Any, update_rent_amount: Any) -> LeaseErrorCode | None:
    if not is_valid_duration(update_duration):
        return LeaseErrorCode.INVALID_UPDATE_PARAM
    if not is_positive_integer(update_rent_amount):
        return LeaseErrorCode.INVALID_UPDATE_PARAM
    return None
