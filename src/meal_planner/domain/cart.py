"""Domain models for the shopping cart."""

from dataclasses import dataclass

DEFAULT_QUANTITY = "适量"
DEFAULT_UNIT = "份"


@dataclass(frozen=True)
class Ingredient:
    """A shopping cart line; quantity and unit are free text."""

    name: str
    quantity: str
    unit: str = ""

    def to_row(self) -> dict[str, str]:
        """Serialize for the cart blob."""
        return {"name": self.name, "quantity": self.quantity, "unit": self.unit}

    @classmethod
    def from_row(cls, row: dict[str, object]) -> "Ingredient":
        """Parse a cart blob entry."""
        return cls(
            name=str(row.get("name") or ""),
            quantity=str(row.get("quantity") or ""),
            unit=str(row.get("unit") or ""),
        )
