"""
Money Module

Currency codes and the immutable Money value used for every amount in a
payment plan. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import re

# High precision for compound index factors
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    BRL = ("BRL", 2)  # Brazilian Real
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency = Currency.BRL

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency = Currency.BRL) -> 'Money':
        return cls(Decimal('0'), currency)

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency.code} and {other.currency.code}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency.code} from {self.currency.code}")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


_DOT_GROUPED = re.compile(r'^[-+]?\d{1,3}(\.\d{3})+$')
_COMMA_GROUPED = re.compile(r'^[-+]?\d{1,3}(,\d{3})+$')


def decimal_from_string(value: str, currency: Optional[Currency] = None) -> Decimal:
    """
    Safely convert string to Decimal, handling Brazilian and international formats

    "1.234,56" and "1,234.56" both yield Decimal("1234.56"); "R$ 10,5" yields 10.5.

    With a currency, digit groups of three are read by that currency's
    convention: for BRL "2.000" is two thousand and "1,234" is rejected;
    for other currencies "1,234" is one thousand two hundred thirty-four and
    "1.234" is rejected. Without a currency "1.234" is a plain decimal.

    Raises:
        ValueError: If string cannot be converted to a finite Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if currency is not None:
        thousands, ambiguous = (
            (_DOT_GROUPED, _COMMA_GROUPED) if currency == Currency.BRL
            else (_COMMA_GROUPED, _DOT_GROUPED)
        )
        if ambiguous.match(clean_value):
            raise ValueError(f"Ambiguous {currency.code} amount '{value}'")
        if thousands.match(clean_value):
            clean_value = clean_value.replace('.', '').replace(',', '')

    if ',' in clean_value and '.' in clean_value:
        # Whichever separator comes last is the decimal separator
        if clean_value.rfind(',') > clean_value.rfind('.'):
            clean_value = clean_value.replace('.', '').replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:
            clean_value = clean_value.replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    if not result.is_finite():
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    return result


def to_decimal(value, currency: Optional[Currency] = None) -> Decimal:
    """
    Coerce a stored or user supplied amount to Decimal.

    Strings are parsed with ``decimal_from_string`` using ``currency``.

    Raises:
        ValueError: for None, booleans, NaN/Infinity and unparsable strings
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Not a numeric amount: {value!r}")
        return value
    if isinstance(value, (int, float)):
        result = Decimal(str(value))
        if not result.is_finite():
            raise ValueError(f"Not a numeric amount: {value!r}")
        return result
    if isinstance(value, str):
        return decimal_from_string(value, currency)
    raise ValueError(f"Not a numeric amount: {value!r}")


def validate_decimal_precision(value: Decimal, currency: Currency) -> Decimal:
    """Round decimal to currency precision"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )
