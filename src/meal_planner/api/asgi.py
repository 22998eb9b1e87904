"""ASGI entrypoint for the meal planner API.

Run with ``uvicorn meal_planner.api.asgi:app``.
"""

from meal_planner.api.app import create_app
from meal_planner.config import Settings
from meal_planner.containers import build_container

settings = Settings()
app = create_app(build_container(settings))
