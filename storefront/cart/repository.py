from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from storefront.common.utils import now
from storefront.schema.full_schema import Cart, CartItem, Product

ITEM_COLUMNS = (
    CartItem.id,
    CartItem.cart_id,
    CartItem.product_id,
    CartItem.quantity,
    CartItem.selected_options,
    CartItem.unit_price,
    CartItem.created_at,
    CartItem.updated_at,
)


def _item_dict(row) -> Dict[str, Any]:
    m = row._mapping
    return {
        "id": int(m["id"]),
        "cart_id": int(m["cart_id"]),
        "product_id": int(m["product_id"]),
        "quantity": int(m["quantity"]),
        "selected_options": list(m["selected_options"] or []),
        "unit_price": int(m["unit_price"]),
        "created_at": m["created_at"],
        "updated_at": m["updated_at"],
    }


def cart_dict(cart: Cart) -> Dict[str, Any]:
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "created_at": cart.created_at,
        "updated_at": cart.updated_at,
    }


async def select_cart(session, user_id) -> Optional[Cart]:
    stmt = select(Cart).where(Cart.user_id == user_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def ensure_cart(session, user_id) -> Cart:
    """Return the user's cart, creating it when absent.

    Must be the first write of its transaction: losing the `carts.user_id` race rolls the
    transaction back before re-reading the winner's row.
    """
    cart = await select_cart(session, user_id)
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id)
    session.add(cart)
    try:
        await session.flush()
        return cart
    except IntegrityError:
        await session.rollback()
        cart = await select_cart(session, user_id)
        if cart is None:
            raise
        return cart


async def lock_cart(session, cart_id) -> None:
    # row lock on the cart serialises item scans for the same user (no-op on sqlite)
    stmt = select(Cart.id).where(Cart.id == cart_id).with_for_update()
    await session.execute(stmt)


async def touch_cart(session, cart_id) -> None:
    await session.execute(update(Cart).where(Cart.id == cart_id).values(updated_at=now()))


async def fetch_cart_items(session, cart_id) -> List[Dict[str, Any]]:
    stmt = select(*ITEM_COLUMNS).where(CartItem.cart_id == cart_id).order_by(CartItem.id)
    res = await session.execute(stmt)
    return [_item_dict(r) for r in res.all()]


async def fetch_cart_with_products(session, user_id) -> Optional[Dict[str, Any]]:
    """Cart row plus every item joined with the product projection, or None when the user has no cart."""
    cart = await select_cart(session, user_id)
    if cart is None:
        return None

    stmt = (
        select(*ITEM_COLUMNS, Product.name, Product.slug, Product.image_url, Product.base_price)
        .outerjoin(Product, Product.id == CartItem.product_id)
        .where(CartItem.cart_id == cart.id)
        .order_by(CartItem.id)
    )
    res = await session.execute(stmt)

    items = []
    for r in res.all():
        item = _item_dict(r)
        m = r._mapping
        item["product"] = None if m["name"] is None else {
            "id": item["product_id"],
            "name": m["name"],
            "slug": m["slug"],
            "image_url": m["image_url"],
            "base_price": int(m["base_price"]),
        }
        items.append(item)

    data = cart_dict(cart)
    data["items"] = items
    return data


async def find_owned_item(session, user_id, item_id, for_update: bool = False) -> Optional[Dict[str, Any]]:
    """The item only if it sits in a cart owned by `user_id`."""
    stmt = (
        select(*ITEM_COLUMNS)
        .join(Cart, Cart.id == CartItem.cart_id)
        .where(CartItem.id == item_id, Cart.user_id == user_id)
    )
    if for_update:
        stmt = stmt.with_for_update(of=CartItem)
    res = await session.execute(stmt)
    row = res.one_or_none()
    return _item_dict(row) if row else None


async def insert_item(session, cart_id, product_id, quantity, selected_options, unit_price) -> Dict[str, Any]:
    ts = now()
    ins = (
        insert(CartItem)
        .values(
            cart_id=cart_id,
            product_id=product_id,
            quantity=quantity,
            selected_options=selected_options,
            unit_price=unit_price,
            created_at=ts,
            updated_at=ts,
        )
        .returning(*ITEM_COLUMNS)
    )
    res = await session.execute(ins)
    return _item_dict(res.one())


async def increment_item(session, item_id, by: int) -> Dict[str, Any]:
    upd = (
        update(CartItem)
        .where(CartItem.id == item_id)
        .values(quantity=CartItem.quantity + by, updated_at=now())
        .returning(*ITEM_COLUMNS)
    )
    res = await session.execute(upd)
    return _item_dict(res.one())


async def set_item_quantity(session, item_id, quantity: int) -> Dict[str, Any]:
    upd = (
        update(CartItem)
        .where(CartItem.id == item_id)
        .values(quantity=quantity, updated_at=now())
        .returning(*ITEM_COLUMNS)
    )
    res = await session.execute(upd)
    return _item_dict(res.one())


async def delete_item(session, item_id) -> int:
    res = await session.execute(delete(CartItem).where(CartItem.id == item_id))
    return res.rowcount or 0


async def delete_cart_items(session, cart_id) -> int:
    res = await session.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    return res.rowcount or 0
