import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from fieldops.errors import LedgerError

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, detail=None) -> JSONResponse:
    body = {'error': message}
    if detail is not None:
        body['detail'] = detail
    return JSONResponse(content=jsonable_encoder(body), status_code=status_code)


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message, exc.fields or None)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        defaults = {401: 'Unauthorized', 403: 'Forbidden', 404: 'Not found'}
        message = exc.detail if isinstance(exc.detail, str) else defaults.get(exc.status_code, 'Request failed')
        response = _error(exc.status_code, message)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        fields = ['.'.join(str(part) for part in err.get('loc', ())[1:]) for err in exc.errors()]
        return _error(422, 'Invalid request', [field for field in fields if field])

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.exception('Database error on %s %s', request.method, request.url.path)
        return _error(500, 'Operation failed')
