from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.orders")

EMPTY_CART_MSG = "سبد خرید خالی است"
ORDER_NOT_FOUND_MSG = "سفارش یافت نشد"
