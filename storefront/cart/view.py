from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from storefront.cart.identity import field_of
from storefront.cart.utils import cart_totals, format_price


def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, dict):
        return item
    if isinstance(item, BaseModel):
        return item.model_dump()
    return {
        "product_id": field_of(item, "product_id"),
        "quantity": field_of(item, "quantity"),
        "selected_options": field_of(item, "selected_options") or [],
        "unit_price": field_of(item, "unit_price"),
    }


class CartView(BaseModel):
    """Read-only projection of whichever cart is authoritative. Totals are derived, never stored."""
    source: Literal["persisted", "local"]
    items: List[Dict[str, Any]] = Field(default_factory=list)

    @computed_field
    @property
    def total_items(self) -> int:
        return cart_totals(self.items)["total_items"]

    @computed_field
    @property
    def total_price(self) -> int:
        return cart_totals(self.items)["total_price"]

    @computed_field
    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    @computed_field
    @property
    def formatted_total(self) -> str:
        return format_price(self.total_price)


def _user_id(user: Any) -> Optional[int]:
    if user is None or isinstance(user, int):
        return user
    return field_of(user, "id")


def active_cart_view(user: Any, persisted_cart: Any, local_items: Optional[Iterable[Any]]) -> CartView:
    """Persisted items win when a user is present and has a cart row (even an empty one); otherwise local items."""
    if _user_id(user) is not None and persisted_cart is not None:
        items = field_of(persisted_cart, "items") or []
        return CartView(source="persisted", items=[_as_dict(i) for i in items])
    return CartView(source="local", items=[_as_dict(i) for i in (local_items or [])])
