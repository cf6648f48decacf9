from typing import Any, Iterable, List

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from storefront.cart import repository
from storefront.cart.constants import MERGE_FAILED_MSG
from storefront.cart.identity import find_same_item
from storefront.cart.models import LineItemIn
from storefront.cart.services import storage_failure, validation_failure
from storefront.common.db_errors import is_recoverable_exception
from storefront.common.logging_setup import get_logger
from storefront.common.results import CartResult, ErrorCode

logger = get_logger("storefront.cart.merge")

_line_items = TypeAdapter(List[LineItemIn])


async def merge_local_cart(session, user_id, local_items: Iterable[Any]) -> CartResult:
    """Fold an anonymous cart snapshot into the user's persisted cart.

    Quantities of items sharing an identity are added, everything else is inserted.
    The whole merge is one transaction: a failing item rolls back every step before it
    and the result carries its index. The caller clears the local cart, only on success.
    """
    try:
        items = _line_items.validate_python(local_items if local_items is not None else [])
    except ValidationError as e:
        return validation_failure(e, "cart.merge", user_id=user_id)

    if not items:
        return CartResult.ok({"merged": True, "updated": 0, "inserted": 0, "cart_id": None})

    updated = inserted = 0
    try:
        cart = await repository.ensure_cart(session, user_id)
        cart_id = cart.id
        await repository.lock_cart(session, cart_id)
        existing = await repository.fetch_cart_items(session, cart_id)

        for idx, item in enumerate(items):
            try:
                match = find_same_item(existing, item)
                if match:
                    row = await repository.increment_item(session, match["id"], item.quantity)
                    match["quantity"] = row["quantity"]
                    updated += 1
                else:
                    row = await repository.insert_item(
                        session, cart_id, item.product_id, item.quantity, item.options_payload(), item.unit_price
                    )
                    existing.append(row)
                    inserted += 1
            except SQLAlchemyError as e:
                await session.rollback()
                retryable = is_recoverable_exception(e)
                logger.error("cart.merge.item_failed", extra={
                    "user_id": user_id, "failed_index": idx, "product_id": item.product_id, "retryable": retryable,
                }, exc_info=e)
                return CartResult.fail(
                    ErrorCode.MERGE_FAILED, MERGE_FAILED_MSG, retryable=retryable, details={"failed_index": idx},
                )

        await repository.touch_cart(session, cart_id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.merge", user_id=user_id)

    logger.info("cart.merge.success", extra={
        "user_id": user_id, "cart_id": cart_id, "updated": updated, "inserted": inserted,
    })
    return CartResult.ok({"merged": True, "updated": updated, "inserted": inserted, "cart_id": cart_id})
