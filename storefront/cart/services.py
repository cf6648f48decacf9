from typing import Any, Dict, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from storefront.cart import repository
from storefront.cart.constants import INVALID_CART_ITEMS_MSG, ITEM_NOT_FOUND_MSG, STORAGE_FAILURE_MSG
from storefront.cart.identity import find_same_item
from storefront.cart.models import LineItemIn
from storefront.common.db_errors import is_recoverable_exception
from storefront.common.logging_setup import get_logger
from storefront.common.results import CartResult, ErrorCode

logger = get_logger("storefront.cart")


def storage_failure(exc: BaseException, event: str, **ctx) -> CartResult:
    retryable = is_recoverable_exception(exc)
    logger.error(f"{event}.storage_failure", extra={**ctx, "retryable": retryable}, exc_info=exc)
    return CartResult.fail(ErrorCode.STORAGE_FAILURE, STORAGE_FAILURE_MSG, retryable=retryable)


def validation_failure(exc: ValidationError, event: str, **ctx) -> CartResult:
    errors = exc.errors(include_url=False, include_context=False)
    logger.warning(f"{event}.invalid", extra={**ctx, "errors": errors})
    return CartResult.fail(ErrorCode.VALIDATION_FAILED, INVALID_CART_ITEMS_MSG, details={"errors": errors})


async def get_cart(session, user_id) -> CartResult:
    """Cart with product-enriched items. `data` is None when the user never added anything."""
    try:
        cart = await repository.fetch_cart_with_products(session, user_id)
    except SQLAlchemyError as e:
        return storage_failure(e, "cart.get", user_id=user_id)
    return CartResult.ok(cart)


async def ensure_cart(session, user_id) -> CartResult:
    try:
        cart = await repository.ensure_cart(session, user_id)
        data = repository.cart_dict(cart)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.ensure", user_id=user_id)
    return CartResult.ok(data)


async def add_item(session, user_id, item: Union[LineItemIn, Dict[str, Any]]) -> CartResult:
    """Add a line item, folding it into an existing row with the same identity."""
    try:
        item = item if isinstance(item, LineItemIn) else LineItemIn.model_validate(item)
    except ValidationError as e:
        return validation_failure(e, "cart.add", user_id=user_id)

    try:
        cart = await repository.ensure_cart(session, user_id)
        cart_id = cart.id
        await repository.lock_cart(session, cart_id)

        existing = await repository.fetch_cart_items(session, cart_id)
        candidates = [r for r in existing if r["product_id"] == item.product_id]
        match = find_same_item(candidates, item)

        if match:
            row = await repository.increment_item(session, match["id"], item.quantity)
            created = False
        else:
            row = await repository.insert_item(
                session, cart_id, item.product_id, item.quantity, item.options_payload(), item.unit_price
            )
            created = True
        await repository.touch_cart(session, cart_id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.add", user_id=user_id, product_id=item.product_id)

    logger.info("cart.add.success", extra={
        "user_id": user_id, "cart_id": cart_id, "item_id": row["id"],
        "quantity": row["quantity"], "created": created,
    })
    return CartResult.ok({"cart_id": cart_id, "item": row, "created": created})


async def update_item(session, user_id, item_id, quantity: int) -> CartResult:
    """Set an owned item's quantity. quantity <= 0 deletes the row."""
    try:
        owned = await repository.find_owned_item(session, user_id, item_id, for_update=True)
        if owned is None:
            await session.rollback()
            logger.info("cart.update.not_found", extra={"user_id": user_id, "item_id": item_id})
            return CartResult.fail(ErrorCode.NOT_FOUND, ITEM_NOT_FOUND_MSG)

        if quantity <= 0:
            await repository.delete_item(session, item_id)
            await repository.touch_cart(session, owned["cart_id"])
            await session.commit()
            logger.info("cart.update.deleted", extra={"user_id": user_id, "item_id": item_id})
            return CartResult.ok({"deleted": True, "item_id": item_id})

        row = await repository.set_item_quantity(session, item_id, quantity)
        await repository.touch_cart(session, owned["cart_id"])
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.update", user_id=user_id, item_id=item_id)

    logger.info("cart.update.success", extra={"user_id": user_id, "item_id": item_id, "quantity": quantity})
    return CartResult.ok({"deleted": False, "item": row})


async def remove_item(session, user_id, item_id) -> CartResult:
    try:
        owned = await repository.find_owned_item(session, user_id, item_id, for_update=True)
        if owned is None:
            await session.rollback()
            logger.info("cart.remove.not_found", extra={"user_id": user_id, "item_id": item_id})
            return CartResult.fail(ErrorCode.NOT_FOUND, ITEM_NOT_FOUND_MSG)

        await repository.delete_item(session, item_id)
        await repository.touch_cart(session, owned["cart_id"])
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.remove", user_id=user_id, item_id=item_id)

    logger.info("cart.remove.success", extra={"user_id": user_id, "item_id": item_id})
    return CartResult.ok({"deleted": True, "item_id": item_id})


async def clear_cart(session, user_id) -> CartResult:
    """Delete every item of the user's cart. The cart row stays; no cart is not an error."""
    try:
        cart = await repository.select_cart(session, user_id)
        if cart is None:
            await session.rollback()
            return CartResult.ok({"cleared": 0})
        removed = await repository.delete_cart_items(session, cart.id)
        await repository.touch_cart(session, cart.id)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        return storage_failure(e, "cart.clear", user_id=user_id)

    logger.info("cart.clear.success", extra={"user_id": user_id, "removed": removed})
    return CartResult.ok({"cleared": removed})
