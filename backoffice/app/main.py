import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.app.api.responses import error
from backoffice.app.api.v1.router import router as v1_router
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import PurchasingError
from backoffice.app.core.logging import setup_logging

setup_logging()
logger = logging.getLogger("backoffice.api")

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(PurchasingError)
def purchasing_error_handler(request: Request, exc: PurchasingError):
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error(exc.message))


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(status_code=400, content=error("; ".join(problems) or "Invalid request"))


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error(str(exc.detail)), headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("%s %s failed on storage", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error("Storage failure, the operation was not applied"))
