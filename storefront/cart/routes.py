from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth.dependencies import optional_user_id, require_user_id
from storefront.cart import services
from storefront.cart.merge import merge_local_cart
from storefront.cart.models import AddItemIn, LineItemIn, MergeIn, UpdateItemIn
from storefront.cart.view import active_cart_view
from storefront.common.results import CartResult, result_response
from storefront.db.dependencies import get_session

carts_router = APIRouter()


class ViewIn(BaseModel):
    local_items: List[LineItemIn] = Field(default_factory=list)


@carts_router.get("")
async def get_cart(user_id: int = Depends(require_user_id), session: AsyncSession = Depends(get_session)):
    result = await services.get_cart(session, user_id)
    return result_response(result)


@carts_router.delete("")
async def clear_cart(user_id: int = Depends(require_user_id), session: AsyncSession = Depends(get_session)):
    result = await services.clear_cart(session, user_id)
    return result_response(result)


@carts_router.post("/items")
async def add_to_cart(payload: AddItemIn, user_id: int = Depends(require_user_id),
                      session: AsyncSession = Depends(get_session)):
    result = await services.add_item(session, user_id, payload)
    return result_response(result, status.HTTP_200_OK)


@carts_router.patch("/items/{item_id}")
async def update_cart_item(item_id: int, payload: UpdateItemIn, user_id: int = Depends(require_user_id),
                           session: AsyncSession = Depends(get_session)):
    result = await services.update_item(session, user_id, item_id, payload.quantity)
    return result_response(result)


@carts_router.delete("/items/{item_id}")
async def remove_cart_item(item_id: int, user_id: int = Depends(require_user_id),
                           session: AsyncSession = Depends(get_session)):
    result = await services.remove_item(session, user_id, item_id)
    return result_response(result)


@carts_router.post("/merge")
async def merge_cart(payload: MergeIn, user_id: int = Depends(require_user_id),
                     session: AsyncSession = Depends(get_session)):
    # client clears its local cart only after a success response
    result = await merge_local_cart(session, user_id, payload.items)
    return result_response(result)


@carts_router.post("/view")
async def view_cart(payload: ViewIn, user_id: Optional[int] = Depends(optional_user_id),
                    session: AsyncSession = Depends(get_session)):
    persisted = None
    if user_id is not None:
        loaded = await services.get_cart(session, user_id)
        if not loaded.success:
            return result_response(loaded)
        persisted = loaded.data

    view = active_cart_view(user_id, persisted, payload.local_items)
    return result_response(CartResult.ok(view))
