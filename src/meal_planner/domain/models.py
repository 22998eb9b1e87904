"""Domain models for the meal planner."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UserRecord:
    """Represents an authenticated user."""

    id: str
    email: str | None = None

    def to_row(self) -> dict[str, object]:
        """Serialize the user for session storage."""
        return {"id": self.id, "email": self.email}

    @classmethod
    def from_row(cls, row: dict[str, object]) -> "UserRecord":
        """Build a user from a stored row."""
        email = row.get("email")
        return cls(id=str(row["id"]), email=str(email) if email else None)
