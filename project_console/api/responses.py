import logging
import time

from fastapi import status
from fastapi.responses import JSONResponse

from project_console.core.engine.errors import (
    EngineError,
    RecordCreateFailed,
    SchemaNotFound,
    UnknownField,
    ValidationRejected,
)
from project_console.core.engine.pipeline import error_response

logger = logging.getLogger(__name__)

# Engine error -> HTTP status; anything else from the engine is an upstream failure
ERROR_STATUS = [
    (ValidationRejected, status.HTTP_400_BAD_REQUEST),
    (UnknownField, status.HTTP_400_BAD_REQUEST),
    (SchemaNotFound, status.HTTP_404_NOT_FOUND),
    (RecordCreateFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def engine_failure(error: EngineError, started: float) -> JSONResponse:
    status_code = status.HTTP_502_BAD_GATEWAY
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            status_code = code
            break

    if status_code >= 500:
        logger.error(f"Engine failure: {error}")
    else:
        logger.warning(f"Request rejected ({status_code}): {error}")
    return JSONResponse(
        status_code=status_code,
        content=error_response(str(error), elapsed_ms(started)),
    )


def timeout_failure(started: float) -> JSONResponse:
    logger.error("Request exceeded the inbound timeout")
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content=error_response(
            "Request timeout: processing took too long", elapsed_ms(started)
        ),
    )
