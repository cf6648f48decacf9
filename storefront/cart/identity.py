from typing import Any, Iterable, List, Optional, Tuple


def field_of(obj: Any, name: str, default: Any = None) -> Any:
    """Read `name` from a mapping, a pydantic model or an ORM row."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def option_pairs(options: Optional[Iterable[Any]]) -> List[Tuple[int, int]]:
    """Canonical form of a selected-options collection: (group_id, option_id) pairs sorted by group then option.

    Duplicate pairs are kept so [(1,10),(1,10)] and [(1,10)] stay distinct.
    """
    if not options:
        return []
    pairs = [(int(field_of(o, "option_group_id")), int(field_of(o, "option_id"))) for o in options]
    pairs.sort()
    return pairs


def is_same_item(a: Any, b: Any) -> bool:
    """Two line items are the same when product ids match and their option sets match regardless of order.

    Missing options count as an empty set. This is the only comparison every cart path uses.
    """
    if field_of(a, "product_id") != field_of(b, "product_id"):
        return False

    opts_a = field_of(a, "selected_options") or []
    opts_b = field_of(b, "selected_options") or []

    if not opts_a and not opts_b:
        return True
    if len(opts_a) != len(opts_b):
        return False

    return option_pairs(opts_a) == option_pairs(opts_b)


def find_same_item(items: Iterable[Any], target: Any) -> Optional[Any]:
    for item in items:
        if is_same_item(item, target):
            return item
    return None


def index_of_same_item(items: List[Any], target: Any) -> int:
    for idx, item in enumerate(items):
        if is_same_item(item, target):
            return idx
    return -1
