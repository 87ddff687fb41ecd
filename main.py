#main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from db import close_pool
from middleware import RequestContextMiddleware
from routes.admin_reconcile import router as admin_reconcile_router
from routes.checkout import router as checkout_router
from routes.health import router as health_router
from routes.orders import router as orders_router
from routes.payouts import router as payouts_router
from routes.products import router as products_router
from services.observability import configure_logging
from settings import validate_env_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_env_settings()
    yield
    close_pool()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Nexus Market API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(checkout_router)
    app.include_router(orders_router)
    app.include_router(payouts_router)
    app.include_router(admin_reconcile_router)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
