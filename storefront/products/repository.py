from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select

from storefront.schema.full_schema import Option, OptionGroup, Product


async def fetch_product_briefs(session, product_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    """Minimal display projection keyed by product id. Missing ids are simply absent."""
    ids = sorted({int(i) for i in product_ids})
    if not ids:
        return {}
    stmt = select(Product.id, Product.name, Product.slug, Product.image_url, Product.base_price).where(Product.id.in_(ids))
    res = await session.execute(stmt)
    return {
        r.id: {"id": r.id, "name": r.name, "slug": r.slug, "image_url": r.image_url, "base_price": int(r.base_price)}
        for r in res.all()
    }


async def fetch_option_labels(session, option_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    """option id -> group id/name and option name, used to label order snapshots."""
    ids = sorted({int(i) for i in option_ids})
    if not ids:
        return {}
    stmt = (
        select(Option.id, Option.name, OptionGroup.id.label("group_id"), OptionGroup.name.label("group_name"))
        .join(OptionGroup, OptionGroup.id == Option.option_group_id)
        .where(Option.id.in_(ids))
    )
    res = await session.execute(stmt)
    return {
        r.id: {
            "option_group_id": r.group_id,
            "option_group_name": r.group_name,
            "option_id": r.id,
            "option_name": r.name,
        }
        for r in res.all()
    }


async def product_by_slug(session, slug: str) -> Optional[Product]:
    stmt = select(Product).where(Product.slug == slug, Product.is_active.is_(True)).limit(1)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def fetch_option_groups(session, product_id: int) -> List[Dict[str, Any]]:
    groups_res = await session.execute(
        select(OptionGroup).where(OptionGroup.product_id == product_id).order_by(OptionGroup.name)
    )
    groups = groups_res.scalars().all()
    if not groups:
        return []

    opts_res = await session.execute(
        select(Option)
        .where(Option.option_group_id.in_([g.id for g in groups]), Option.is_available.is_(True))
        .order_by(Option.name)
    )
    options = opts_res.scalars().all()

    return [
        {
            "id": g.id,
            "name": g.name,
            "is_required": g.is_required,
            "options": [
                {"id": o.id, "name": o.name, "price_modifier": int(o.price_modifier), "is_default": o.is_default}
                for o in options if o.option_group_id == g.id
            ],
        }
        for g in groups
    ]
