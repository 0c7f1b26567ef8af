"""JSON response envelope for control plane endpoints.

Success bodies look like ``{"msg": ..., "data": ...}``; failures look like
``{"msg": ..., "error": {"type": ..., "fields": [...]}}`` with the HTTP
status taken from the error type. Raw responses skip the envelope.
"""

from typing import Any, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import AppError

logger = structlog.get_logger("response")


def error_body(err: AppError) -> dict:
    error: dict = {"type": err.type.value}
    if err.fields:
        error["fields"] = [f.to_dict() for f in err.fields]
    return {"msg": err.msg, "error": error}


def error_response(err: AppError) -> JSONResponse:
    """Log ``err`` and render it as a failure envelope."""
    log_kwargs = {"error_type": err.type.value, "status": err.status_code, "detail": err.log}
    if err.internal_err is not None:
        log_kwargs["internal_error"] = repr(err.internal_err)
    if err.status_code >= 500:
        logger.error(err.msg, **log_kwargs)
    else:
        logger.info(err.msg, **log_kwargs)
    return JSONResponse(status_code=err.status_code, content=error_body(err))


def http_response(
    succ_msg: str = "",
    data: Any = None,
    err: Optional[AppError] = None,
    raw: bool = False,
) -> JSONResponse:
    """Build the response for a controller outcome.

    Parameters
    - succ_msg: Message for the success envelope
    - data: Payload; encoded with ``jsonable_encoder``
    - err: When set, the failure envelope is returned instead
    - raw: Return ``data`` as the body without the envelope
    """
    if err is not None:
        return error_response(err)
    if raw:
        return JSONResponse(status_code=200, content=jsonable_encoder(data))
    body: dict = {"msg": succ_msg}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=200, content=body)
