import enum
from typing import Any, Dict, Optional

from fastapi import status
from pydantic import BaseModel

from storefront.common.constants import request_id_ctx
from storefront.common.utils import build_error, json_error, success_response


class ErrorCode(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    MERGE_FAILED = "MERGE_FAILED"


ERROR_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.STORAGE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.MERGE_FAILED: status.HTTP_409_CONFLICT,
}


class CartError(BaseModel):
    code: ErrorCode
    message: str
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None


class CartResult(BaseModel):
    """Outcome of a cart operation. Expected failures travel here instead of being raised."""
    success: bool
    data: Any = None
    error: Optional[CartError] = None

    @classmethod
    def ok(cls, data: Any = None) -> "CartResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: ErrorCode, message: str, *, retryable: bool = False,
             details: Optional[Dict[str, Any]] = None) -> "CartResult":
        return cls(success=False, error=CartError(code=code, message=message, retryable=retryable, details=details))


def result_response(result: CartResult, status_code: int = status.HTTP_200_OK):
    rid = request_id_ctx.get()
    if result.success:
        return success_response(result.data, status_code, request_id=rid)

    err = result.error
    details = {"message": err.message, "retryable": err.retryable}
    if err.details:
        details.update(err.details)
    payload = build_error(code=err.code.value, details=details, request_id=rid)
    return json_error(payload, status_code=ERROR_STATUS[err.code])
