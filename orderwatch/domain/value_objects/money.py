"""
Money value object for handling monetary amounts with currency.

This value object ensures type safety and provides clear semantics
for monetary amounts reported by the marketplace.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


@dataclass(frozen=True)
class Money:
    """
    Immutable value object representing a monetary amount with currency.

    The amount keeps the precision the marketplace reported, so "19.90"
    is displayed as "19.90" and not normalized.

    Attributes:
        amount: The monetary amount as Decimal for precision
        currency: ISO currency code (e.g., "USD", "CAD")

    Example:
        >>> total = Money(amount=Decimal("24.99"), currency="USD")
        >>> str(total)
        'USD 24.99'
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate money object after initialization."""
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except InvalidOperation as e:
                raise ValueError(f"Invalid money amount: {self.amount!r}") from e

        if not self.amount.is_finite():
            raise ValueError(f"Invalid money amount: {self.amount}")

        if not self.currency or len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")

    def __str__(self) -> str:
        """String representation of Money."""
        return f"{self.currency} {self.amount}"

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return f"Money(amount=Decimal('{self.amount}'), currency='{self.currency}')"

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> "Money | None":
        """
        Create Money from an SP-API ``Money`` object.

        Args:
            data: Dict with ``Amount`` and ``CurrencyCode`` keys

        Returns:
            Money, or None when the amount is absent
        """
        if not data or data.get("Amount") in (None, ""):
            return None
        return cls(amount=Decimal(str(data["Amount"])), currency=data.get("CurrencyCode") or "USD")

    def to_api(self) -> dict[str, str]:
        """Convert back to the SP-API ``Money`` shape."""
        return {"Amount": str(self.amount), "CurrencyCode": self.currency}
