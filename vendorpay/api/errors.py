from typing import Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.errors import ErrorKind, ServiceError


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.DUPLICATE_VENDOR: 409,
    ErrorKind.VENDOR_NOT_FOUND: 404,
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.LEDGER_TRANSIENT: 503,
    ErrorKind.LEDGER_PERMANENT: 502,
    ErrorKind.TIMED_OUT: 504,
}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError as ``{error, message, stage, signature}``."""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    return JSONResponse(status_code=status_code, content=exc.to_dict())
