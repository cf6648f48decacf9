import hashlib
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

from storefront.auth.constants import MIN_PHONE_LENGTH, OTP_LENGTH
from storefront.common.utils import now
from storefront.config.settings import config_settings

TOKEN_HASH_ALGO = config_settings.TOKEN_HASH_ALGO
SESSION_EXPIRE_DAYS = int(config_settings.SESSION_EXPIRE_DAYS)
OTP_EXPIRE_MINUTES = int(config_settings.OTP_EXPIRE_MINUTES)

_PHONE_RE = re.compile(r"^\+?\d+$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Strip spaces and dashes; None when the number is not digits (optional leading +) of a sane length."""
    if not phone:
        return None
    cleaned = re.sub(r"[\s\-]", "", phone)
    if not _PHONE_RE.match(cleaned) or len(cleaned.lstrip("+")) < MIN_PHONE_LENGTH:
        return None
    return cleaned


def generate_code() -> str:
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_plain_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def make_session_token_plain() -> str:
    return generate_plain_token(32)


def hash_token(plain: str) -> str:
    hash_func = getattr(hashlib, TOKEN_HASH_ALGO)
    return hash_func(plain.encode()).hexdigest()


def code_expiry() -> datetime:
    return now() + timedelta(minutes=OTP_EXPIRE_MINUTES)


def session_expiry() -> datetime:
    return now() + timedelta(days=SESSION_EXPIRE_DAYS)
