"""Random balanced menu generation."""

import math
import random
from collections.abc import Sequence

from meal_planner.domain.dishes import Dish
from meal_planner.errors import ValidationError

MEAT_SHARE = 0.4


def generate_random_menu(
    dishes: Sequence[Dish], dining_count: int, rng: random.Random | None = None
) -> list[str]:
    """Pick dining_count + 1 dish ids, about 40% of them meat.

    Meat dishes come first, then non-meat ones. A short pool yields fewer
    dishes instead of repeating any.
    """
    if dining_count < 0:
        raise ValidationError("dining_count", "Dining count must not be negative")
    rng = rng or random.Random()
    menu_size = dining_count + 1
    meat_count = math.ceil(menu_size * MEAT_SHARE)
    veg_count = menu_size - meat_count

    meat_pool = [dish.id for dish in dishes if dish.is_meat]
    veg_pool = [dish.id for dish in dishes if not dish.is_meat]

    selected = rng.sample(meat_pool, min(meat_count, len(meat_pool)))
    selected += rng.sample(veg_pool, min(veg_count, len(veg_pool)))
    return list(dict.fromkeys(selected))
