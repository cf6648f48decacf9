from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.auth.dependencies import require_user_id
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.orders.models import OrderCreateIn
from storefront.orders.services import create_order, get_order, list_orders

orders_router = APIRouter()


@orders_router.post("/orders", status_code=status.HTTP_201_CREATED)
async def place_order(payload: OrderCreateIn, user_id: int = Depends(require_user_id),
                      session: AsyncSession = Depends(get_session)):
    order = await create_order(session, user_id, payload)
    return success_response(order, status.HTTP_201_CREATED)


@orders_router.get("/orders")
async def my_orders(user_id: int = Depends(require_user_id), session: AsyncSession = Depends(get_session)):
    orders = await list_orders(session, user_id)
    return success_response({"orders": orders}, status.HTTP_200_OK)


@orders_router.get("/orders/{order_id}")
async def order_details(order_id: int, user_id: int = Depends(require_user_id),
                        session: AsyncSession = Depends(get_session)):
    order = await get_order(session, user_id, order_id)
    return success_response(order, status.HTTP_200_OK)
