from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cart.utils import format_price
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.products.constants import PRODUCT_NOT_FOUND_MSG, logger
from storefront.products.models import PriceQuoteIn
from storefront.products.repository import fetch_option_groups, product_by_slug
from storefront.products.utils import calculate_product_price

prods_public_router = APIRouter()


@prods_public_router.get("/{slug}")
async def get_product_details(slug: str, session: AsyncSession = Depends(get_session)):

    product = await product_by_slug(session, slug)
    if product is None:
        logger.info("product.not_found", extra={"slug": slug})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PRODUCT_NOT_FOUND_MSG)

    data = {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "image_url": product.image_url,
        "sku": product.sku,
        "base_price": int(product.base_price),
        "option_groups": await fetch_option_groups(session, product.id),
    }
    return success_response(data, status_code=status.HTTP_200_OK)


@prods_public_router.post("/{slug}/price")
async def quote_product_price(slug: str, payload: PriceQuoteIn, session: AsyncSession = Depends(get_session)):
    """Unit price for a configuration, the value clients send as `unit_price` when adding to the cart."""
    product = await product_by_slug(session, slug)
    if product is None:
        logger.info("product.not_found", extra={"slug": slug})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PRODUCT_NOT_FOUND_MSG)

    groups = await fetch_option_groups(session, product.id)
    options = [o for g in groups for o in g["options"]]
    unit_price = calculate_product_price(product.base_price, payload.selected_options, options)

    data = {
        "product_id": product.id,
        "base_price": int(product.base_price),
        "unit_price": unit_price,
        "formatted_price": format_price(unit_price),
    }
    return success_response(data, status_code=status.HTTP_200_OK)
