# File: parkeazy/domain/validation.py
"""
Payment and extension input validation

Validators collect every failing field into a dict so the caller can show
all problems at once; the raise_* helpers turn a non-empty dict into a
ValidationError.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional
import re

from .exceptions import ValidationError


CARD_NUMBER_LENGTH = 16
EXPIRY_PATTERN = re.compile(r'^(\d{2})/(\d{2})$')
CVC_PATTERN = re.compile(r'^\d{3,4}$')
WALLET_PATTERN = re.compile(r'^01[3-9]\d{8}$')

MIN_EXTENSION_HOURS = Decimal('0.5')
MAX_EXTENSION_HOURS = Decimal('6')
EXTENSION_STEP_HOURS = Decimal('0.5')

CARD_NUMBER_ERROR = "Card number must be 16 digits."
EXPIRY_ERROR = "Invalid expiry date."
CVC_ERROR = "CVC must be 3 or 4 digits."
NAME_ERROR = "Name is required."
WALLET_ERROR = "Must be a valid 11-digit number starting with 01[3-9]."


def normalize_card_number(card_number: str) -> str:
    return re.sub(r'\s', '', card_number or '')


def normalize_wallet_number(account_number: str) -> str:
    return re.sub(r'[-\s]', '', account_number or '')


def card_brand(card_number: str) -> str:
    """Card network guessed from the leading digits"""
    number = normalize_card_number(card_number)
    if number.startswith('4'):
        return 'visa'
    if re.match(r'^5[1-5]', number):
        return 'mastercard'
    if re.match(r'^3[47]', number):
        return 'amex'
    return 'other'


def is_valid_expiry(expiry_date: str, today: Optional[date] = None) -> bool:
    """MM/YY that is not earlier than the current month"""
    match = EXPIRY_PATTERN.match((expiry_date or '').strip())
    if not match:
        return False

    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return False

    today = today or date.today()
    current_year = today.year % 100
    if year > current_year:
        return True
    return year == current_year and month >= today.month


def validate_card(
    card_number: str,
    expiry_date: str,
    cvc: str,
    cardholder_name: str,
    today: Optional[date] = None
) -> Dict[str, str]:
    """Return a field -> message dict; empty when the card is acceptable"""
    errors: Dict[str, str] = {}

    number = normalize_card_number(card_number)
    if len(number) != CARD_NUMBER_LENGTH or not number.isdigit():
        errors['card_number'] = CARD_NUMBER_ERROR

    if not is_valid_expiry(expiry_date, today):
        errors['expiry_date'] = EXPIRY_ERROR

    if not CVC_PATTERN.match((cvc or '').strip()):
        errors['cvc'] = CVC_ERROR

    if len((cardholder_name or '').strip()) < 2:
        errors['cardholder_name'] = NAME_ERROR

    return errors


def validate_mobile_wallet(account_number: str) -> Dict[str, str]:
    if not WALLET_PATTERN.match(normalize_wallet_number(account_number)):
        return {'account_number': WALLET_ERROR}
    return {}


def validate_extension_hours(hours) -> Dict[str, str]:
    """Extensions run from half an hour to six hours in half-hour steps"""
    try:
        hours = Decimal(str(hours))
    except InvalidOperation:
        return {'hours': "Extension must be a number of hours."}

    if hours < MIN_EXTENSION_HOURS or hours > MAX_EXTENSION_HOURS:
        return {'hours': f"Extension must be between {MIN_EXTENSION_HOURS} and {MAX_EXTENSION_HOURS} hours."}
    if hours % EXTENSION_STEP_HOURS != 0:
        return {'hours': f"Extension must be in steps of {EXTENSION_STEP_HOURS} hours."}
    return {}


def raise_for_errors(errors: Dict[str, str]) -> None:
    if errors:
        raise ValidationError(errors)
