# user facing messages, the storefront is Persian-only
ITEM_NOT_FOUND_MSG = "آیتم یافت نشد"
CART_NOT_FOUND_MSG = "سبد خرید یافت نشد"
INVALID_CART_ITEMS_MSG = "اطلاعات سبد خرید نامعتبر است"
STORAGE_FAILURE_MSG = "خطا در ارتباط با پایگاه داده"
MERGE_FAILED_MSG = "خطا در ادغام سبد خرید"

CURRENCY_SUFFIX = "ریال"

# latin -> persian digits, arabic thousands separator
PERSIAN_DIGITS = str.maketrans("0123456789", "۰۱۲۳۴۵۶۷۸۹")
PERSIAN_THOUSANDS_SEP = "٬"
