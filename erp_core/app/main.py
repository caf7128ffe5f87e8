from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import LOG_LEVEL, LOG_JSON, get_cors_origins
from .db import SessionLocal, create_db_and_tables
from .errors import ERPError
from .logging_config import configure_logging, get_logger
from .services import AccountService

from .auth import router as auth_router
from .users import router as users_router
from .customers import router as customers_router
from .routers.inventory import router as inventory_router
from .routers.sales import router as sales_router
from .routers.shipment import router as shipment_router
from .routers.finance import router as finance_router

log = get_logger(__name__)


def init_database():
    """Create tables and make sure the system ledger accounts exist."""
    create_db_and_tables()
    db = SessionLocal()
    try:
        AccountService.ensure_system_accounts(db)
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    log.info("startup_complete")
    yield


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else err.get("msg", "invalid value"))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Every failure leaves the API as JSON with an `error` field."""

    @app.exception_handler(ERPError)
    async def erp_error_handler(request: Request, exc: ERPError):
        log.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _describe_validation_error(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log.exception("unhandled_error", path=request.url.path, method=request.method)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    configure_logging(LOG_LEVEL, LOG_JSON)

    app = FastAPI(
        title="Roll-Stock ERP",
        description="Inventory, inspection, sales, shipment and ledger for paper roll stock",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(customers_router)
    app.include_router(inventory_router)
    app.include_router(sales_router)
    app.include_router(shipment_router)
    app.include_router(finance_router)

    @app.get("/api/health", tags=["health"])
    def health():
        return {"status": "ok"}

    return app


app = create_app()
