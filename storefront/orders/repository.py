from typing import Any, Dict, List, Optional

from sqlalchemy import desc, insert, select
from uuid6 import uuid7

from storefront.common.utils import now
from storefront.schema.full_schema import OrderItem, Orders, OrderStatus

ORDER_COLUMNS = (
    Orders.id,
    Orders.public_id,
    Orders.user_id,
    Orders.status,
    Orders.total_amount,
    Orders.shipping_address,
    Orders.notes,
    Orders.created_at,
    Orders.updated_at,
)

ORDER_ITEM_COLUMNS = (
    OrderItem.id,
    OrderItem.order_id,
    OrderItem.product_id,
    OrderItem.product_name,
    OrderItem.quantity,
    OrderItem.unit_price,
    OrderItem.selected_options,
    OrderItem.created_at,
)


async def insert_order(session, user_id, total_amount, shipping_address, notes) -> Dict[str, Any]:
    ts = now()
    stmt = (
        insert(Orders)
        .values(
            public_id=uuid7(),
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            total_amount=total_amount,
            shipping_address=shipping_address,
            notes=notes,
            created_at=ts,
            updated_at=ts,
        )
        .returning(*ORDER_COLUMNS)
    )
    res = await session.execute(stmt)
    return dict(res.one()._mapping)


async def insert_order_items(session, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not rows:
        return []
    ts = now()
    inserted = []
    # one statement per row keeps RETURNING portable across drivers
    for row in rows:
        res = await session.execute(insert(OrderItem).values(**row, created_at=ts).returning(*ORDER_ITEM_COLUMNS))
        inserted.append(dict(res.one()._mapping))
    return inserted


async def fetch_user_orders(session, user_id) -> List[Dict[str, Any]]:
    stmt = select(*ORDER_COLUMNS).where(Orders.user_id == user_id).order_by(desc(Orders.created_at), desc(Orders.id))
    res = await session.execute(stmt)
    return [dict(r._mapping) for r in res.all()]


async def fetch_owned_order(session, user_id, order_id) -> Optional[Dict[str, Any]]:
    stmt = select(*ORDER_COLUMNS).where(Orders.id == order_id, Orders.user_id == user_id)
    res = await session.execute(stmt)
    row = res.one_or_none()
    if row is None:
        return None

    order = dict(row._mapping)
    items_res = await session.execute(
        select(*ORDER_ITEM_COLUMNS).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    )
    order["items"] = [dict(r._mapping) for r in items_res.all()]
    return order
