"""Pydantic request bodies for the HTTP API."""

from datetime import date

from pydantic import BaseModel, Field


class Credentials(BaseModel):
    """Email and password for sign-in or registration."""

    email: str
    password: str


class ImagePayload(BaseModel):
    """Base64-encoded dish photo."""

    filename: str
    content_type: str
    data_base64: str


class CustomDishRequest(BaseModel):
    """A user-submitted dish."""

    name: str
    category: str
    ingredients: list[str] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    calories: str | float | None = None
    protein: str | float | None = None
    carbs: str | float | None = None
    fat: str | float | None = None
    image: ImagePayload | None = None


class ToggleRequest(BaseModel):
    dish_id: str


class RandomMenuRequest(BaseModel):
    dining_count: int


class IngredientPayload(BaseModel):
    """A shopping cart entry."""

    name: str
    quantity: str
    unit: str = ""


class SaveMealRequest(BaseModel):
    """Dishes to log; the current selection when omitted."""

    dish_ids: list[str] | None = None
    meal_date: date | None = None
