import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes.inventory import router as inventory_router
from app.api.routes.orders import router as orders_router
from app.api.routes.purchases import router as purchases_router
from app.api.routes.sales import router as sales_router
from app.api.routes.waste import router as waste_router
from app.core.config import settings
from app.core.errors import InvalidInputError, LedgerError
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    logger.info("app_started", extra={"app_name": settings.app_name})
    yield
    logger.info("app_stopped", extra={"app_name": settings.app_name})


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "error_code": exc.code})
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"success": False, "error": exc.to_dict()}))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = InvalidInputError("Request validation failed", errors=jsonable_encoder(exc.errors()))
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.to_dict()},
    )


app.include_router(inventory_router)
app.include_router(sales_router)
app.include_router(orders_router)
app.include_router(waste_router)
app.include_router(purchases_router)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}
