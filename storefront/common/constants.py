import contextvars
from typing import Optional

# request id of the request being served, picked up by the log formatter and error envelopes
request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
