import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

# must be set before anything imports storefront settings
_tmp_dir = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp_dir}/test.db"
os.environ["ENV"] = "dev"
os.environ["OTP_ECHO_CODE"] = "true"

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel

from storefront.db.connection import async_engine, async_session
from storefront.schema.full_schema import Option, OptionGroup, Product, Users

url_prefix = "/api/v1"


@pytest.fixture
async def db():
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    # pooled aiosqlite connections are bound to this test's loop
    await async_engine.dispose()


@pytest.fixture
async def db_session(db):
    async with async_session() as session:
        yield session


@pytest.fixture
async def ac_client(db):
    from storefront.main import app

    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest.fixture
def make_user(db):
    async def _make(phone_number="09120000001", first_name=None, last_name=None):
        async with async_session() as session:
            user = Users(phone_number=phone_number, first_name=first_name, last_name=last_name,
                         is_profile_complete=bool(first_name and last_name))
            session.add(user)
            await session.commit()
            return user.id
    return _make


@pytest.fixture
def make_product(db):
    """Product with a RAM group (8GB +0 / 16GB +500) and a Color group (Black / Silver +100)."""
    async def _make(slug="laptop-x", base_price=1000, is_active=True):
        async with async_session() as session:
            product = Product(name=f"Product {slug}", slug=slug, base_price=base_price, is_active=is_active,
                              image_url=f"/img/{slug}.png")
            session.add(product)
            await session.flush()

            ram = OptionGroup(product_id=product.id, name="RAM", is_required=True)
            color = OptionGroup(product_id=product.id, name="Color")
            session.add_all([ram, color])
            await session.flush()

            opts = [
                Option(option_group_id=ram.id, name="8GB", price_modifier=0, is_default=True),
                Option(option_group_id=ram.id, name="16GB", price_modifier=500),
                Option(option_group_id=color.id, name="Black", price_modifier=0),
                Option(option_group_id=color.id, name="Silver", price_modifier=100),
            ]
            session.add_all(opts)
            await session.flush()

            data = {
                "id": product.id,
                "base_price": base_price,
                "ram_group": ram.id,
                "color_group": color.id,
                "ram_8": opts[0].id,
                "ram_16": opts[1].id,
                "black": opts[2].id,
                "silver": opts[3].id,
            }
            await session.commit()
            return data
    return _make


@pytest.fixture
def otp_login():
    async def _login(ac, phone_number="09121234567"):
        """Run send-code + verify-code and return (auth headers, user id) for the new session."""
        r = await ac.post(f"{url_prefix}/auth/send-code", json={"phone_number": phone_number})
        assert r.status_code == 200, r.text
        code = r.json()["data"]["code"]

        r = await ac.post(f"{url_prefix}/auth/verify-code", json={"phone_number": phone_number, "code": code})
        assert r.status_code == 200, r.text
        data = r.json()["data"]
        # header auth keeps tests independent of the client cookie jar
        ac.cookies.clear()
        return {"X-Session-Token": data["session_token"]}, data["user"]["id"]
    return _login
