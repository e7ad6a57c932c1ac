"""
Values -- immutable, self-validating domain value objects.

Responsibility:
    Pricing pairs an amount with its ISO 4217 currency so the two are never
    separated on their way from the admin's review into the project row and
    the payment provider.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - InvalidPricingError on construction with a negative, non-finite or
      non-numeric amount, an unknown currency, or more decimal places
      than the currency's minor unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from engagement_kernel.domain.currency import (
    minor_unit_exponent,
    to_minor_units,
    validate_currency,
)
from engagement_kernel.exceptions import InvalidPricingError


@dataclass(frozen=True, slots=True)
class Pricing:
    """
    Price quoted for a project during review.

    Guarantees:
        - amount is a finite Decimal >= 0 (never float), scaled to the
          currency's minor unit: 500 USD is Decimal("500.00").
        - currency is an uppercase ISO 4217 code.
        - notes is a string (possibly empty).
    """

    amount: Decimal
    currency: str
    notes: str = ""

    def __post_init__(self) -> None:
        amount = self.amount
        if isinstance(amount, float):
            raise InvalidPricingError("amount", "float amounts are not accepted")
        if not isinstance(amount, Decimal):
            try:
                amount = Decimal(str(amount))
            except (InvalidOperation, ValueError) as e:
                raise InvalidPricingError("amount", f"not a number: {self.amount!r}") from e
        if not amount.is_finite():
            raise InvalidPricingError("amount", "must be finite")
        if amount < 0:
            raise InvalidPricingError("amount", "must be >= 0")
        object.__setattr__(self, "amount", amount)

        try:
            currency = validate_currency(self.currency)
        except (ValueError, AttributeError) as e:
            raise InvalidPricingError("currency", str(e)) from e
        object.__setattr__(self, "currency", currency)

        # Stored as Numeric(38, 9); carry exactly the currency's minor-unit scale.
        quantum = Decimal(1).scaleb(-minor_unit_exponent(currency))
        try:
            scaled = amount.quantize(quantum)
        except InvalidOperation as e:
            raise InvalidPricingError("amount", "too large") from e
        if scaled != amount:
            raise InvalidPricingError(
                "amount", f"more decimal places than {currency} allows"
            )
        object.__setattr__(self, "amount", scaled)

        if self.notes is None:
            object.__setattr__(self, "notes", "")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str, notes: str = "") -> Pricing:
        return cls(amount=amount, currency=currency, notes=notes)

    @property
    def minor_units(self) -> int:
        """Amount expressed in the currency's smallest unit (cents for USD)."""
        return to_minor_units(self.amount, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
