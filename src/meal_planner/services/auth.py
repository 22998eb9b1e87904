"""Sign-in, registration and per-session data restore."""

import logging
from dataclasses import dataclass

from meal_planner.adapters.gateway import AuthGateway, user_from_result
from meal_planner.domain.models import UserRecord
from meal_planner.errors import AuthError, NotAuthenticatedError, ValidationError
from meal_planner.services.cart import ShoppingCartService
from meal_planner.services.catalog import CatalogService
from meal_planner.services.history import MealHistoryService
from meal_planner.services.selection import SelectionService

MIN_PASSWORD_LENGTH = 6

_logger = logging.getLogger(__name__)


@dataclass
class AuthService:
    """Application service for the user session lifecycle."""

    gateway: AuthGateway
    selection: SelectionService
    cart: ShoppingCartService
    history: MealHistoryService
    catalog: CatalogService
    user: UserRecord | None = None

    def require_user(self) -> UserRecord:
        """Return the signed-in user or raise."""
        if self.user is None:
            raise NotAuthenticatedError("Sign in first")
        return self.user

    async def login(self, email: str, password: str) -> UserRecord:
        _validate_credentials(email, password, new_account=False)
        result = await self.gateway.sign_in(email.strip(), password)
        user = user_from_result(result)
        if result.error is not None or user is None:
            message = result.error.message if result.error else "No user returned"
            raise NotAuthenticatedError(message)
        self.user = user
        await self._establish_session(user.id)
        return user

    async def register(self, email: str, password: str) -> UserRecord:
        """Create an account and seed empty selection and cart rows."""
        _validate_credentials(email, password, new_account=True)
        result = await self.gateway.sign_up(email.strip(), password)
        user = user_from_result(result)
        if result.error is not None or user is None:
            message = result.error.message if result.error else "No user returned"
            raise AuthError(message)
        self.user = user
        initializers = (self.selection.initialize_remote, self.cart.initialize_remote)
        for initialize in initializers:
            outcome = await initialize(user.id)
            if outcome.error is not None:
                _logger.warning(
                    "Initializing rows for %s failed: %s",
                    user.id,
                    outcome.error.message,
                )
        await self._establish_session(user.id)
        return user

    async def logout(self) -> None:
        result = await self.gateway.sign_out()
        if result.error is not None:
            raise AuthError(result.error.message)
        self.user = None
        self.selection.reset()
        self.cart.reset()
        self.history.reset()
        await self.catalog.load()

    async def check_auth(self) -> UserRecord | None:
        """Resume a persisted session, if any."""
        result = await self.gateway.get_user()
        user = user_from_result(result)
        if result.error is not None:
            _logger.warning("Session check failed: %s", result.error.message)
        self.user = user
        if user is not None:
            await self._establish_session(user.id)
        return user

    async def _establish_session(self, user_id: str) -> None:
        # Restore failures never fail the sign-in itself.
        try:
            await self.selection.restore(user_id)
            await self.cart.load(user_id)
            await self.history.load(user_id)
            flushed = await self.history.flush_local(user_id)
            await self.catalog.load(user_id)
        except Exception:
            _logger.exception("Restoring data for %s failed", user_id)
            return
        _logger.info("Session ready for %s (%s queued meals synced)", user_id, flushed)


def _validate_credentials(email: str, password: str, *, new_account: bool) -> None:
    if "@" not in (email or ""):
        raise ValidationError("email", "Enter a valid email address")
    if not password:
        raise ValidationError("password", "Password is required")
    if new_account and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
