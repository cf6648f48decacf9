import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Column, Field, Relationship, SQLModel, String
from uuid6 import uuid7

from storefront.common.utils import now

# jsonb on postgres, plain json on sqlite (local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Users(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    phone_number: str = Field(sa_column=Column(String(20), nullable=False, unique=True, index=True))
    first_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    last_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    is_profile_complete: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    sessions: List["UserSession"] = Relationship(back_populates="user")
    cart: Optional["Cart"] = Relationship(back_populates="user", sa_relationship_kwargs={"uselist": False})  # user -> cart (1:1)


class VerificationCode(SQLModel, table=True):
    """One-time login codes. Only the hash of the code is stored."""
    __tablename__ = "verification_codes"

    id: Optional[int] = Field(default=None, primary_key=True)
    phone_number: str = Field(sa_column=Column(String(20), nullable=False, index=True))
    code_hash: str = Field(sa_column=Column(String(128), nullable=False))
    is_used: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))


class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    # hashed session token (sha256 hex), the raw token only lives in the cookie
    session_token_hash: str = Field(sa_column=Column(String(128), nullable=False, unique=True, index=True))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    user: "Users" = Relationship(back_populates="sessions")


# ---------------------------------------------------------------------------------------------------------

class Product(SQLModel, table=True):
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(200), nullable=False))
    slug: str = Field(sa_column=Column(String(200), nullable=False, unique=True, index=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    image_url: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    sku: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True, unique=True))
    base_price: int = Field(sa_column=Column(BigInteger, nullable=False), description="Price in rials (int)")
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    option_groups: List["OptionGroup"] = Relationship(back_populates="product")


# Option groups are the configuration axes of a product ("RAM", "Color")
class OptionGroup(SQLModel, table=True):
    __tablename__ = "option_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(sa_column=Column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False))
    name: str = Field(sa_column=Column(String(50), nullable=False))
    is_required: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    product: "Product" = Relationship(back_populates="option_groups")
    options: List["Option"] = Relationship(back_populates="option_group")


class Option(SQLModel, table=True):
    __tablename__ = "options"

    id: Optional[int] = Field(default=None, primary_key=True)
    option_group_id: int = Field(sa_column=Column(ForeignKey("option_groups.id", ondelete="CASCADE"), index=True, nullable=False))
    name: str = Field(sa_column=Column(String(50), nullable=False))
    price_modifier: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))  # may be negative
    is_default: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    is_available: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    option_group: "OptionGroup" = Relationship(back_populates="options")


# ---------------------------------------------------------------------------------------------------------

class Cart(SQLModel, table=True):
    __tablename__ = "carts"

    id: Optional[int] = Field(default=None, primary_key=True)
    # unique: at most one cart row per user, racing creators fall back to re-reading the winner
    user_id: int = Field(
        sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, unique=True),
    )
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    user: Optional["Users"] = Relationship(back_populates="cart")
    cart_items: List["CartItem"] = Relationship(back_populates="cart")


# no unique constraint on (cart_id, product_id, selected_options), identity is decided in cart.identity
class CartItem(SQLModel, table=True):
    __tablename__ = "cart_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(sa_column=Column(ForeignKey("carts.id", ondelete="CASCADE"), index=True, nullable=False))
    product_id: int = Field(sa_column=Column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    # list of {"option_group_id": int, "option_id": int}
    selected_options: List[Dict[str, int]] = Field(default_factory=list, sa_column=Column(JSONType, nullable=False))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))  # snapshot at add time
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    cart: "Cart" = Relationship(back_populates="cart_items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )


# --------------------------------------------------------------------------------------------
class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# User --> Orders (1:many)
class Orders(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    user_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(20), nullable=False, index=True))
    total_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    shipping_address: Dict[str, Any] = Field(sa_column=Column(JSONType, nullable=False))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    items: List["OrderItem"] = Relationship(back_populates="order")


# Order --> OrderItems (1:many), product name and option labels are snapshots
class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False))
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False))
    product_name: str = Field(sa_column=Column(String(200), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))
    selected_options: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSONType, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    order: "Orders" = Relationship(back_populates="items")
