from typing import Any, Iterable, Optional

from storefront.cart.identity import field_of


def calculate_product_price(base_price: int, selected_options: Optional[Iterable[Any]], options: Iterable[Any]) -> int:
    """Base price plus the price modifier of every selected option. Unknown option ids add nothing."""
    modifiers = {int(field_of(o, "id")): int(field_of(o, "price_modifier", 0) or 0) for o in options}
    total_modifier = sum(modifiers.get(int(field_of(s, "option_id")), 0) for s in (selected_options or []))
    return int(base_price) + total_modifier
