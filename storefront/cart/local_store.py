import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import orjson
from pydantic import TypeAdapter, ValidationError

from storefront.cart.identity import index_of_same_item
from storefront.cart.models import LineItemIn, LocalCartItem, parse_selected_options
from storefront.cart.utils import cleanup_old_items, now_iso
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings

logger = get_logger("storefront.cart.local")

_items_adapter = TypeAdapter(List[LocalCartItem])


class SlotStorage(Protocol):
    """Synchronous key-value slot holding serialized snapshots."""

    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """One json file per key inside `directory`. Writes replace the file wholesale."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        # temp file + rename so a crash never leaves half a snapshot behind
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(value)
            os.replace(tmp, self._path(key))
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class LocalCartStore:
    """Anonymous visitor cart kept in a local slot.

    Every mutation rewrites the whole snapshot under `key`. Item matching goes through
    `cart.identity`, so option order never creates a second entry.
    """

    def __init__(self, storage: SlotStorage, key: Optional[str] = None):
        self.storage = storage
        self.key = key or config_settings.LOCAL_CART_KEY

    def _load(self) -> List[LocalCartItem]:
        raw = self.storage.get(self.key)
        if raw is None:
            return []
        try:
            return _items_adapter.validate_python(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning("cart.local.snapshot_corrupt", extra={"key": self.key, "error": str(e)})
            return []

    def _save(self, items: List[LocalCartItem]) -> List[LocalCartItem]:
        self.storage.set(self.key, orjson.dumps([i.model_dump() for i in items]))
        return items

    def items(self) -> List[LocalCartItem]:
        return self._load()

    def snapshot(self) -> List[Dict[str, Any]]:
        return [i.model_dump() for i in self._load()]

    def is_empty(self) -> bool:
        return not self._load()

    def add(self, item: Union[LineItemIn, Dict[str, Any]]) -> List[LocalCartItem]:
        new_item = item if isinstance(item, LineItemIn) else LineItemIn.model_validate(item)
        items = self._load()
        ts = now_iso()

        idx = index_of_same_item(items, new_item)
        if idx >= 0:
            existing = items[idx]
            items[idx] = existing.model_copy(update={"quantity": existing.quantity + new_item.quantity, "timestamp": ts})
        else:
            items.append(LocalCartItem(**new_item.model_dump(exclude={"timestamp"}), timestamp=ts))

        logger.debug("cart.local.add", extra={"product_id": new_item.product_id, "quantity": new_item.quantity})
        return self._save(items)

    def _target(self, product_id: int, selected_options: Optional[List[Any]]) -> Optional[Dict[str, Any]]:
        try:
            options = parse_selected_options(selected_options)
        except ValidationError as e:
            logger.warning("cart.local.invalid_options", extra={"product_id": product_id, "error": str(e)})
            return None
        return {"product_id": product_id, "selected_options": options}

    def update(self, product_id: int, selected_options: Optional[List[Any]], quantity: int) -> List[LocalCartItem]:
        """Set the quantity of the matching entry. Absent entries and malformed options are left alone; quantity <= 0 removes."""
        if quantity <= 0:
            return self.remove(product_id, selected_options)

        items = self._load()
        target = self._target(product_id, selected_options)
        idx = index_of_same_item(items, target) if target else -1
        if idx < 0:
            logger.debug("cart.local.update.missing", extra={"product_id": product_id})
            return items

        items[idx] = items[idx].model_copy(update={"quantity": quantity, "timestamp": now_iso()})
        return self._save(items)

    def remove(self, product_id: int, selected_options: Optional[List[Any]]) -> List[LocalCartItem]:
        items = self._load()
        target = self._target(product_id, selected_options)
        idx = index_of_same_item(items, target) if target else -1
        if idx < 0:
            return items
        del items[idx]
        return self._save(items)

    def clear(self) -> List[LocalCartItem]:
        return self._save([])

    def prune(self, max_age_hours: Optional[int] = None) -> List[LocalCartItem]:
        hours = max_age_hours if max_age_hours is not None else config_settings.LOCAL_CART_MAX_AGE_HOURS
        items = self._load()
        kept = cleanup_old_items(items, hours)
        if len(kept) != len(items):
            logger.info("cart.local.pruned", extra={"dropped": len(items) - len(kept)})
        return self._save(kept)
