from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, Field, TypeAdapter


class SelectedOption(BaseModel):
    option_group_id: int
    option_id: int


class LineItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    selected_options: List[SelectedOption] = Field(default_factory=list)
    unit_price: int = Field(..., ge=0)

    def options_payload(self) -> List[Dict[str, int]]:
        return [o.model_dump() for o in self.selected_options]


class LocalCartItem(LineItemIn):
    """Anonymous cart entry. `timestamp` is the ISO time of the last mutation."""
    timestamp: str


AddItemIn = LineItemIn


class UpdateItemIn(BaseModel):
    quantity: int  # <= 0 removes the item


class MergeIn(BaseModel):
    # raw dicts, the merge engine validates every entry before writing anything
    items: List[Dict[str, Any]] = Field(default_factory=list)


_options_adapter = TypeAdapter(List[SelectedOption])


def parse_selected_options(options: Optional[Iterable[Any]]) -> List[SelectedOption]:
    """Validate raw option picks. Raises ValidationError on malformed entries; None is no options."""
    if options is None:
        return []
    return _options_adapter.validate_python(options)
