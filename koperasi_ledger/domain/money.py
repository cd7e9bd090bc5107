"""Fixed-precision monetary value used for every amount and balance"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import total_ordering
from typing import Iterable

from koperasi_ledger.domain.exceptions import InvalidAmountError

CENT = Decimal("0.01")


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    Exact decimal amount with two fractional digits.

    Values are never rounded on the way in: an input carrying more
    precision than a cent raises InvalidAmountError instead of being
    truncated. Floats are refused outright.
    """

    amount: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise InvalidAmountError(f"Money requires a Decimal, got {type(self.amount).__name__}")
        if not self.amount.is_finite():
            raise InvalidAmountError(f"Amount must be finite: {self.amount}")
        quantized = self.amount.quantize(CENT)
        if quantized != self.amount:
            raise InvalidAmountError(f"Amount has more than 2 fractional digits: {self.amount}")
        object.__setattr__(self, "amount", quantized)

    @classmethod
    def of(cls, value: "Money | Decimal | str | int") -> "Money":
        """Build Money from a Decimal, decimal string or int (never float)"""
        if isinstance(value, Money):
            return value
        if isinstance(value, bool) or isinstance(value, float):
            raise InvalidAmountError("Binary floating point amounts are not accepted")
        if isinstance(value, int):
            return cls(Decimal(value))
        if isinstance(value, str):
            try:
                return cls(Decimal(value.strip()))
            except InvalidOperation as e:
                raise InvalidAmountError(f"Invalid amount: {value!r}") from e
        if isinstance(value, Decimal):
            return cls(value)
        raise InvalidAmountError(f"Unsupported amount type: {type(value).__name__}")

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal("0"))

    @classmethod
    def total(cls, values: Iterable["Money"]) -> "Money":
        result = cls.zero()
        for value in values:
            result = result + value
        return result

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + other.amount)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - other.amount)

    def __neg__(self) -> "Money":
        return Money(-self.amount)

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount == other.amount

    def __hash__(self) -> int:
        return hash(self.amount)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def serialize(self) -> str:
        """Exact decimal string, e.g. '500000.00'"""
        return str(self.amount)

    @classmethod
    def parse(cls, text: str) -> "Money":
        return cls.of(text)

    def __str__(self) -> str:
        return self.serialize()
