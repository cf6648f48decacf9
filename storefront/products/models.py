from typing import List
from pydantic import BaseModel, Field

from storefront.cart.models import SelectedOption


class PriceQuoteIn(BaseModel):
    selected_options: List[SelectedOption] = Field(default_factory=list)
