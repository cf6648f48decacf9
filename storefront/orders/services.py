from typing import Any, Dict

from fastapi import HTTPException, status

from storefront.cart import repository as cart_repository
from storefront.cart.utils import cart_totals
from storefront.orders import repository
from storefront.orders.constants import EMPTY_CART_MSG, ORDER_NOT_FOUND_MSG, logger
from storefront.orders.models import OrderCreateIn
from storefront.products.repository import fetch_option_labels, fetch_product_briefs


def _labelled_options(selected, labels) -> list:
    out = []
    for opt in selected or []:
        label = labels.get(int(opt["option_id"]), {})
        out.append({
            "option_group_id": int(opt["option_group_id"]),
            "option_group_name": label.get("option_group_name", ""),
            "option_id": int(opt["option_id"]),
            "option_name": label.get("option_name", ""),
        })
    return out


async def create_order(session, user_id: int, payload: OrderCreateIn) -> Dict[str, Any]:
    """Snapshot the persisted cart into an order and empty the cart, in one transaction."""
    cart = await cart_repository.select_cart(session, user_id)
    if cart is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMPTY_CART_MSG)
    cart_id = cart.id

    await cart_repository.lock_cart(session, cart_id)
    items = await cart_repository.fetch_cart_items(session, cart_id)
    if not items:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMPTY_CART_MSG)

    briefs = await fetch_product_briefs(session, [i["product_id"] for i in items])
    labels = await fetch_option_labels(session, [o["option_id"] for i in items for o in i["selected_options"]])

    total_amount = cart_totals(items)["total_price"]
    order = await repository.insert_order(
        session, user_id, total_amount, payload.shipping_address.model_dump(), payload.notes
    )

    rows = [
        {
            "order_id": order["id"],
            "product_id": i["product_id"],
            "product_name": briefs.get(i["product_id"], {}).get("name", ""),
            "quantity": i["quantity"],
            "unit_price": i["unit_price"],
            "selected_options": _labelled_options(i["selected_options"], labels),
        }
        for i in items
    ]
    order["items"] = await repository.insert_order_items(session, rows)

    await cart_repository.delete_cart_items(session, cart_id)
    await session.commit()

    logger.info("order.create.success", extra={
        "user_id": user_id, "order_id": order["id"], "total_amount": total_amount, "items": len(rows),
    })
    return order


async def list_orders(session, user_id: int):
    return await repository.fetch_user_orders(session, user_id)


async def get_order(session, user_id: int, order_id: int) -> Dict[str, Any]:
    order = await repository.fetch_owned_order(session, user_id, order_id)
    if order is None:
        logger.info("order.not_found", extra={"user_id": user_id, "order_id": order_id})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ORDER_NOT_FOUND_MSG)
    return order
