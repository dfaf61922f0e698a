# shared/money.py
"""
Fixed-point money arithmetic.

All monetary values in the ledger are Decimals quantized to two places with
ROUND_HALF_UP. Money pairs an amount with an ISO currency code so that sums
across currencies are rejected instead of silently added.

Usage:
    price = Money.of('1000.00', 'INR')
    tax = price * Decimal('0.18')        # Money('180.00', 'INR')
    total = Money.sum([price, tax], 'INR')
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.core.exceptions import ValidationError


CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value):
    """
    Coerce a user-supplied value to a quantized Decimal.

    Accepts Decimal, int and numeric strings. Floats are converted through
    their string form so 0.1 stays 0.10 rather than 0.1000000000000000055.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(',', ''))
        except InvalidOperation:
            raise ValidationError(f"Invalid monetary amount: {value!r}")
    else:
        raise ValidationError(f"Invalid monetary amount: {value!r}")

    if not result.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    return result.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_decimal(self.amount))
        if not self.currency or len(self.currency) != 3:
            raise ValidationError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, 'currency', self.currency.upper())

    @classmethod
    def of(cls, value, currency):
        return cls(to_decimal(value), currency)

    @classmethod
    def zero(cls, currency):
        return cls(ZERO, currency)

    @classmethod
    def sum(cls, values, currency):
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    def _check(self, other):
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise ValidationError(
                f"Currency mismatch: {self.currency} vs {other.currency}"
            )

    def __add__(self, other):
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other):
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self):
        return Money(-self.amount, self.currency)

    def __mul__(self, factor):
        if isinstance(factor, Money):
            raise TypeError("Cannot multiply Money by Money")
        return Money(self.amount * Decimal(str(factor)), self.currency)

    __rmul__ = __mul__

    def __lt__(self, other):
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other):
        self._check(other)
        return self.amount <= other.amount

    def __gt__(self, other):
        self._check(other)
        return self.amount > other.amount

    def __ge__(self, other):
        self._check(other)
        return self.amount >= other.amount

    def is_zero(self):
        return self.amount == ZERO

    def is_positive(self):
        return self.amount > ZERO

    def is_negative(self):
        return self.amount < ZERO

    def __str__(self):
        return f"{self.currency} {self.amount}"
