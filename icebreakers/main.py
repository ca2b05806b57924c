from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from icebreakers.core.logging import setup_logging
from icebreakers.core.init_db import init_db
from icebreakers.core.errors import InvalidArgument, LocationServiceError, Unavailable
from icebreakers.api.router import api_router

setup_logging()
logger.info("Starting Icebreakers location backend")


app = FastAPI(
    title="Icebreakers Location Backend",
    version="0.1.0"
)

# All API routes (includes location via router.py)
app.include_router(api_router)


def _error_response(exc: LocationServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


@app.exception_handler(LocationServiceError)
async def location_error_handler(request: Request, exc: LocationServiceError):
    logger.info(f"{exc.code} | path={request.url.path} detail={exc.message}")
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
    logger.info(f"invalid-argument | path={request.url.path} fields={fields}")
    return _error_response(InvalidArgument(f"Invalid fields: {', '.join(fields)}"))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store failure | path={request.url.path} error={exc!r}")
    return _error_response(Unavailable("Temporary failure, retry later."))


# Init DB after app is created
init_db()

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
