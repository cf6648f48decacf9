from typing import Optional
from pydantic import BaseModel, Field


class ShippingAddressIn(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=10, max_length=20)
    province: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1, max_length=20)


class OrderCreateIn(BaseModel):
    shipping_address: ShippingAddressIn
    notes: Optional[str] = Field(None, max_length=2000)
