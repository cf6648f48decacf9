import asyncio

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from storefront.cart import repository, services
from storefront.common.db_errors import is_recoverable_exception
from storefront.common.results import ErrorCode
from storefront.db.connection import async_session
from storefront.schema.full_schema import Cart, CartItem


def opt(group, option):
    return {"option_group_id": group, "option_id": option}


def line(product_id, quantity=2, options=None, unit_price=1000):
    return {"product_id": product_id, "quantity": quantity, "selected_options": options or [], "unit_price": unit_price}


async def count_items(cart_id=None):
    async with async_session() as session:
        stmt = select(func.count()).select_from(CartItem)
        if cart_id is not None:
            stmt = stmt.where(CartItem.cart_id == cart_id)
        return (await session.execute(stmt)).scalar_one()


async def test_get_cart_without_cart_is_not_an_error(make_user, db_session):
    user_id = await make_user()
    result = await services.get_cart(db_session, user_id)
    assert result.success
    assert result.data is None


async def test_ensure_cart_is_idempotent(make_user):
    user_id = await make_user()
    async with async_session() as s1:
        first = await services.ensure_cart(s1, user_id)
    async with async_session() as s2:
        second = await services.ensure_cart(s2, user_id)

    assert first.data["id"] == second.data["id"]
    async with async_session() as session:
        carts = (await session.execute(select(func.count()).select_from(Cart).where(Cart.user_id == user_id))).scalar_one()
    assert carts == 1


async def test_empty_cart_is_distinct_from_no_cart(make_user):
    user_id = await make_user()
    async with async_session() as session:
        await services.ensure_cart(session, user_id)
    async with async_session() as session:
        result = await services.get_cart(session, user_id)

    assert result.data is not None
    assert result.data["items"] == []


async def test_add_same_item_twice_keeps_one_row(make_user, make_product):
    user_id = await make_user()
    product = await make_product()

    for _ in range(2):
        async with async_session() as session:
            result = await services.add_item(session, user_id, line(product["id"], quantity=2))
            assert result.success

    assert result.data["created"] is False
    assert result.data["item"]["quantity"] == 4
    assert await count_items() == 1


async def test_add_with_reordered_options_folds_into_existing_row(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    a = [opt(p["ram_group"], p["ram_16"]), opt(p["color_group"], p["silver"])]
    b = list(reversed(a))

    async with async_session() as session:
        await services.add_item(session, user_id, line(p["id"], quantity=1, options=a, unit_price=1600))
    async with async_session() as session:
        result = await services.add_item(session, user_id, line(p["id"], quantity=1, options=b, unit_price=1600))

    assert result.data["item"]["quantity"] == 2
    assert await count_items() == 1


async def test_add_keeps_distinct_option_sets_apart(make_user, make_product):
    user_id = await make_user()
    p = await make_product()

    async with async_session() as session:
        await services.add_item(session, user_id, line(p["id"], options=[opt(p["ram_group"], p["ram_8"])]))
    async with async_session() as session:
        await services.add_item(session, user_id, line(p["id"], options=[opt(p["ram_group"], p["ram_16"])]))

    assert await count_items() == 2


async def test_add_rejects_invalid_item_without_writing(make_user, db_session):
    user_id = await make_user()
    result = await services.add_item(db_session, user_id, {"product_id": 1, "quantity": 0, "unit_price": 10})

    assert not result.success
    assert result.error.code == ErrorCode.VALIDATION_FAILED
    assert await count_items() == 0


async def test_get_cart_joins_product_projection(make_user, make_product):
    user_id = await make_user()
    p = await make_product(slug="phone-z", base_price=2000)
    async with async_session() as session:
        await services.add_item(session, user_id, line(p["id"], unit_price=2000))

    async with async_session() as session:
        result = await services.get_cart(session, user_id)

    item = result.data["items"][0]
    assert item["product"] == {
        "id": p["id"], "name": "Product phone-z", "slug": "phone-z", "image_url": "/img/phone-z.png", "base_price": 2000,
    }


async def test_update_quantity_zero_deletes_row(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    async with async_session() as session:
        added = await services.add_item(session, user_id, line(p["id"]))
    item_id = added.data["item"]["id"]

    async with async_session() as session:
        result = await services.update_item(session, user_id, item_id, 0)
    assert result.success
    assert result.data == {"deleted": True, "item_id": item_id}

    async with async_session() as session:
        cart = await services.get_cart(session, user_id)
    assert cart.data["items"] == []


async def test_update_sets_quantity(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    async with async_session() as session:
        added = await services.add_item(session, user_id, line(p["id"]))

    async with async_session() as session:
        result = await services.update_item(session, user_id, added.data["item"]["id"], 9)

    assert result.data["deleted"] is False
    assert result.data["item"]["quantity"] == 9


async def test_update_of_foreign_item_is_not_found(make_user, make_product):
    owner = await make_user(phone_number="09120000001")
    intruder = await make_user(phone_number="09120000002")
    p = await make_product()
    async with async_session() as session:
        added = await services.add_item(session, owner, line(p["id"], quantity=3))
    item_id = added.data["item"]["id"]

    async with async_session() as session:
        result = await services.update_item(session, intruder, item_id, 1)
    assert not result.success
    assert result.error.code == ErrorCode.NOT_FOUND

    async with async_session() as session:
        result = await services.remove_item(session, intruder, item_id)
    assert result.error.code == ErrorCode.NOT_FOUND

    async with async_session() as session:
        cart = await services.get_cart(session, owner)
    assert cart.data["items"][0]["quantity"] == 3


async def test_remove_missing_item_is_not_found(make_user, db_session):
    user_id = await make_user()
    result = await services.remove_item(db_session, user_id, 12345)
    assert result.error.code == ErrorCode.NOT_FOUND


async def test_clear_cart(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    async with async_session() as session:
        await services.add_item(session, user_id, line(p["id"]))
        await services.add_item(session, user_id, line(p["id"], options=[opt(p["ram_group"], p["ram_16"])]))

    async with async_session() as session:
        result = await services.clear_cart(session, user_id)
    assert result.data == {"cleared": 2}

    async with async_session() as session:
        cart = await services.get_cart(session, user_id)
    # cart row survives, only items go
    assert cart.data is not None
    assert cart.data["items"] == []


async def test_clear_without_cart_is_noop(make_user, db_session):
    user_id = await make_user()
    result = await services.clear_cart(db_session, user_id)
    assert result.success
    assert result.data == {"cleared": 0}


class BrokenSession:
    """Stands in for a session whose connection dropped."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))

    async def rollback(self):
        return None

    async def commit(self):
        return None


async def test_storage_failure_is_structured_and_retryable():
    result = await services.get_cart(BrokenSession(), 1)

    assert not result.success
    assert result.error.code == ErrorCode.STORAGE_FAILURE
    assert result.error.retryable is True


async def test_add_storage_failure_is_reported_not_raised():
    result = await services.add_item(BrokenSession(), 1, line(1))
    assert result.error.code == ErrorCode.STORAGE_FAILURE


def test_is_recoverable_exception():
    assert is_recoverable_exception(OperationalError("x", {}, Exception("boom")))
    assert is_recoverable_exception(TimeoutError())
    assert not is_recoverable_exception(ValueError("bad"))


async def test_ensure_cart_recovers_from_losing_the_insert_race(make_user, monkeypatch):
    user_id = await make_user()
    async with async_session() as session:
        winner = await services.ensure_cart(session, user_id)

    real_select = repository.select_cart
    calls = {"n": 0}

    async def stale_select(session, uid):
        # first read misses the row another request already committed
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return await real_select(session, uid)

    monkeypatch.setattr(repository, "select_cart", stale_select)

    async with async_session() as session:
        result = await services.ensure_cart(session, user_id)

    assert result.success
    assert result.data["id"] == winner.data["id"]
    assert calls["n"] == 2
    async with async_session() as session:
        carts = (await session.execute(select(func.count()).select_from(Cart).where(Cart.user_id == user_id))).scalar_one()
    assert carts == 1


async def test_concurrent_adds_of_same_item_share_one_row(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    opts = [opt(p["ram_group"], p["ram_16"])]

    async def add(quantity, options):
        async with async_session() as session:
            return await services.add_item(session, user_id, line(p["id"], quantity=quantity, options=options))

    first, second = await asyncio.gather(add(2, opts), add(3, list(reversed(opts))))

    assert first.success and second.success
    assert await count_items() == 1
    async with async_session() as session:
        cart = await services.get_cart(session, user_id)
    assert [i["quantity"] for i in cart.data["items"]] == [5]


async def test_concurrent_updates_last_write_wins(make_user, make_product):
    user_id = await make_user()
    p = await make_product()
    async with async_session() as session:
        added = await services.add_item(session, user_id, line(p["id"], quantity=1))
    item_id = added.data["item"]["id"]

    async def update(quantity):
        async with async_session() as session:
            return await services.update_item(session, user_id, item_id, quantity)

    results = await asyncio.gather(update(5), update(7))

    assert all(r.success for r in results)
    async with async_session() as session:
        cart = await services.get_cart(session, user_id)
    items = cart.data["items"]
    assert len(items) == 1
    # no summing: the row holds exactly one of the written values
    assert items[0]["quantity"] in (5, 7)
