from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from storefront.cart import services
from storefront.cart.constants import ITEM_NOT_FOUND_MSG
from storefront.cart.identity import find_same_item, field_of
from storefront.cart.local_store import LocalCartStore
from storefront.cart.merge import merge_local_cart
from storefront.cart.models import LineItemIn, parse_selected_options
from storefront.cart.view import CartView, active_cart_view
from storefront.common.logging_setup import get_logger
from storefront.common.results import CartResult, ErrorCode
from storefront.db.connection import async_session

logger = get_logger("storefront.cart.client")


class CartSession:
    """Cart state of one visitor: the local store, the logged-in user and the last loaded persisted cart.

    Mutations and the view follow one rule: the persisted cart is used when a user is logged in
    and their cart is loaded, the local cart otherwise. After a failed login merge nothing persisted
    is loaded, so the visitor keeps working on (and seeing) the local cart until the merge goes through.
    """

    def __init__(self, local_store: LocalCartStore, session_maker=async_session):
        self.local_store = local_store
        self.session_maker = session_maker
        self.user_id: Optional[int] = None
        self.persisted_cart: Optional[Dict[str, Any]] = None
        self.merge_pending = False

    @property
    def is_logged_in(self) -> bool:
        return self.user_id is not None

    @property
    def uses_persisted(self) -> bool:
        return self.is_logged_in and self.persisted_cart is not None

    async def initialize(self, user: Any = None) -> CartResult:
        user_id = user if (user is None or isinstance(user, int)) else field_of(user, "id")
        if user_id is None:
            self.user_id = None
            self.persisted_cart = None
            self.merge_pending = False
            return CartResult.ok(self.view())
        # a restored session with an anonymous cart still folds it in
        return await self.login(user_id)

    async def refresh(self) -> CartResult:
        """Reload the persisted cart. Creates the (empty) cart row once no merge is pending."""
        if self.user_id is None or self.merge_pending:
            return CartResult.ok(self.view())

        async with self.session_maker() as session:
            result = await services.get_cart(session, self.user_id)
            if result.success and result.data is None:
                ensured = await services.ensure_cart(session, self.user_id)
                if not ensured.success:
                    return ensured
                result = await services.get_cart(session, self.user_id)
        if not result.success:
            return result
        self.persisted_cart = result.data
        return CartResult.ok(self.view())

    async def login(self, user_id: int) -> CartResult:
        """Merge the local cart into the user's cart, clear it on success, then load the persisted cart."""
        self.user_id = user_id

        snapshot = self.local_store.snapshot()
        if snapshot:
            async with self.session_maker() as session:
                merged = await merge_local_cart(session, user_id, snapshot)
            if not merged.success:
                self.merge_pending = True
                self.persisted_cart = None
                logger.warning("cart.session.login.merge_failed", extra={
                    "user_id": user_id, "code": merged.error.code.value,
                })
                return merged
            self.local_store.clear()

        self.merge_pending = False
        return await self.refresh()

    async def retry_merge(self) -> CartResult:
        if not (self.is_logged_in and self.merge_pending):
            return CartResult.ok(self.view())
        return await self.login(self.user_id)

    def logout(self) -> CartView:
        # the local cart survives logout
        self.user_id = None
        self.persisted_cart = None
        self.merge_pending = False
        return self.view()

    def _persisted_match(self, product_id: int, selected_options: List[Any]) -> Optional[Dict[str, Any]]:
        items = (self.persisted_cart or {}).get("items") or []
        return find_same_item(items, {"product_id": product_id, "selected_options": selected_options})

    async def add_item(self, item: Union[LineItemIn, Dict[str, Any]]) -> CartResult:
        try:
            item = item if isinstance(item, LineItemIn) else LineItemIn.model_validate(item)
        except ValidationError as e:
            return services.validation_failure(e, "cart.session.add", user_id=self.user_id)

        if self.merge_pending:
            retried = await self.retry_merge()
            if not retried.success:
                logger.info("cart.session.add.merge_still_pending", extra={"user_id": self.user_id})

        if not self.uses_persisted:
            self.local_store.add(item)
            return CartResult.ok(self.view())

        async with self.session_maker() as session:
            result = await services.add_item(session, self.user_id, item)
        if not result.success:
            return result
        return await self.refresh()

    async def update_item(self, product_id: int, selected_options: Optional[List[Any]], quantity: int) -> CartResult:
        try:
            options = parse_selected_options(selected_options)
        except ValidationError as e:
            return services.validation_failure(e, "cart.session.update", user_id=self.user_id)

        if not self.uses_persisted:
            self.local_store.update(product_id, options, quantity)
            return CartResult.ok(self.view())

        match = self._persisted_match(product_id, options)
        if match is None:
            return CartResult.fail(ErrorCode.NOT_FOUND, ITEM_NOT_FOUND_MSG)

        async with self.session_maker() as session:
            result = await services.update_item(session, self.user_id, match["id"], quantity)
        if not result.success:
            return result
        return await self.refresh()

    async def remove_item(self, product_id: int, selected_options: Optional[List[Any]]) -> CartResult:
        try:
            options = parse_selected_options(selected_options)
        except ValidationError as e:
            return services.validation_failure(e, "cart.session.remove", user_id=self.user_id)

        if not self.uses_persisted:
            self.local_store.remove(product_id, options)
            return CartResult.ok(self.view())

        match = self._persisted_match(product_id, options)
        if match is None:
            return CartResult.fail(ErrorCode.NOT_FOUND, ITEM_NOT_FOUND_MSG)

        async with self.session_maker() as session:
            result = await services.remove_item(session, self.user_id, match["id"])
        if not result.success:
            return result
        return await self.refresh()

    async def clear(self) -> CartResult:
        if not self.uses_persisted:
            self.local_store.clear()
            return CartResult.ok(self.view())

        async with self.session_maker() as session:
            result = await services.clear_cart(session, self.user_id)
        if not result.success:
            return result
        return await self.refresh()

    def view(self) -> CartView:
        return active_cart_view(self.user_id, self.persisted_cart, self.local_store.items())
