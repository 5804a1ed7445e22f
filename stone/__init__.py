"""Stone API application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stone.config import csrf_config, get_settings
from stone.config_validator import ConfigValidator
from stone.database import DatabasePool, get_pool


def create_app(settings=None, pool: DatabasePool = None) -> FastAPI:
    """Create the FastAPI application"""

    settings = settings or get_settings()

    from stone.logging import configure_logging
    configure_logging(settings.LOG_LEVEL)

    ConfigValidator(settings).check_and_raise_on_errors()

    if pool is None:
        pool = get_pool(settings)
    else:
        pool.acquire()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.db_pool.release()

    app = FastAPI(
        title="Stone API",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    app.state.db_pool = pool

    # Middleware added last runs first:
    # CORS -> request logger -> exception handler -> CSRF -> routes
    from stone.middleware.csrf import CSRFMiddleware
    from stone.middleware.exception_handlers import (
        exception_handler_middleware,
        register_exception_handlers,
    )
    from stone.middleware.request_logger import RequestLoggerMiddleware

    csrf = csrf_config(settings)
    app.state.csrf_config = csrf.with_defaults()
    app.add_middleware(CSRFMiddleware, config=csrf)
    app.middleware("http")(exception_handler_middleware)
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Content-Type", "X-CSRF-Token", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    from stone.health import health_router
    from stone.users import users_router

    app.include_router(health_router)
    app.include_router(users_router)

    return app
