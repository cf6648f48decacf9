from storefront.config.settings import config_settings
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.auth")

COOKIE_NAME = config_settings.SESSION_COOKIE_NAME

SESSION_TTL_SECONDS = int(config_settings.SESSION_EXPIRE_DAYS) * 24 * 3600

OTP_TTL_SECONDS = int(config_settings.OTP_EXPIRE_MINUTES) * 60

OTP_LENGTH = 5

MIN_PHONE_LENGTH = 10

MIN_NAME_LENGTH = 2

INVALID_PHONE_MSG = "شماره تلفن معتبر نیست"
INVALID_CODE_MSG = "کد تایید نامعتبر یا منقضی شده است"
NOT_LOGGED_IN_MSG = "شما وارد نشده‌اید"
FIRST_NAME_TOO_SHORT_MSG = "نام باید حداقل 2 کاراکتر باشد"
LAST_NAME_TOO_SHORT_MSG = "نام خانوادگی باید حداقل 2 کاراکتر باشد"
