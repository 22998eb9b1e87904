"""Application exceptions."""


class MealPlannerError(Exception):
    """Base error for the meal planner."""


class ValidationError(MealPlannerError):
    """Input rejected before any remote call."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class SyncError(MealPlannerError):
    """A remote operation failed and the caller must be told."""


class NotAuthenticatedError(MealPlannerError):
    """An operation requires a signed-in user."""


class AuthError(MealPlannerError):
    """The auth backend rejected a sign-up or sign-out."""
