from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SendCodeIn(BaseModel):
    phone_number: str = Field(..., examples=["09121234567"])


class VerifyCodeIn(BaseModel):
    phone_number: str = Field(...)
    code: str = Field(..., min_length=1, max_length=10)


class ProfileUpdateIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class CurrentUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_profile_complete: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
