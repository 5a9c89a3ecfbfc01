# File: parkeazy/application/currency.py
"""
Currency Manager

Prices are held in Bangladeshi Taka. Exchange rates express how many taka
one unit of a foreign currency buys; only super-admins may change them.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional
import logging

from .audit import ActionType, AuditLogger
from .base import AuthProvider, require_role, require_user
from ..domain.exceptions import ValidationError
from ..domain.models import DEFAULT_CURRENCY, Money, UserRole


TAKA_SIGN = "৳"

DEFAULT_RATES: Dict[str, Decimal] = {
    "USD": Decimal("117.50"),
    "EUR": Decimal("127.80"),
    "GBP": Decimal("149.25"),
    "INR": Decimal("1.41"),
}


def _group_indian(digits: str) -> str:
    """12345678 -> 1,23,45,678"""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount) -> str:
    """Render an amount in taka with lakh/crore grouping, e.g. ৳1,23,456.50"""
    if isinstance(amount, Money):
        amount = amount.amount
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    integer_part, fraction = f"{abs(value):.2f}".split(".")
    return f"{sign}{TAKA_SIGN}{_group_indian(integer_part)}.{fraction}"


class CurrencyManager:
    """Exchange rates between the base currency and foreign currencies"""

    def __init__(
        self,
        audit: Optional[AuditLogger] = None,
        auth: Optional[AuthProvider] = None,
        rates: Optional[Mapping[str, Any]] = None,
        base_currency: str = DEFAULT_CURRENCY
    ):
        self._audit = audit
        self._auth = auth
        self.base_currency = base_currency
        self._rates = self._parse_rates(rates if rates is not None else DEFAULT_RATES)
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    def rates(self) -> Dict[str, Decimal]:
        return dict(self._rates)

    def _parse_rates(self, rates: Mapping[str, Any]) -> Dict[str, Decimal]:
        parsed: Dict[str, Decimal] = {}
        errors: Dict[str, str] = {}
        for code, rate in rates.items():
            code = code.strip().upper()
            try:
                value = Decimal(str(rate))
            except InvalidOperation:
                errors[code] = "Rate must be a number."
                continue
            if value <= 0:
                errors[code] = "Rate must be greater than zero."
            else:
                parsed[code] = value
        if errors:
            raise ValidationError(errors)
        return parsed

    def _rate(self, currency: str) -> Decimal:
        code = currency.strip().upper()
        if code == self.base_currency:
            return Decimal("1")
        if code not in self._rates:
            raise ValidationError({'currency': f"Unsupported currency {code}."})
        return self._rates[code]

    def update_rates(self, rates: Mapping[str, Any]) -> Dict[str, Decimal]:
        """Merge new rates in; super-admin only"""
        actor = None
        if self._auth is not None:
            actor = require_role(require_user(self._auth), [UserRole.SUPER_ADMIN])

        parsed = self._parse_rates(rates)
        self._rates.update(parsed)

        if self._audit is not None and actor is not None:
            self._audit.record(
                actor.id, actor.role, ActionType.CURRENCY_RATES_UPDATED,
                "Updated exchange rates: " + ", ".join(f"{code} {rate}" for code, rate in sorted(parsed.items())),
                metadata={code: str(rate) for code, rate in parsed.items()}
            )

        self._logger.info(f"Exchange rates updated for {', '.join(sorted(parsed))}")
        return self.rates

    def to_base(self, amount, currency: str) -> Money:
        """Convert a foreign amount into the base currency"""
        return Money(Decimal(str(amount)) * self._rate(currency), self.base_currency)

    def from_base(self, amount, currency: str) -> Decimal:
        """Convert a base-currency amount into currency"""
        if isinstance(amount, Money):
            amount = amount.amount
        return Decimal(str(amount)) / self._rate(currency)
