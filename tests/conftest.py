"""
tests/conftest.py

Shared fixtures: in-memory database pool, full app, bare CSRF app
"""

import os
from http.cookies import SimpleCookie

import pytest

# Set testing environment before imports
os.environ["STONE_CONFIG"] = "testing"


@pytest.fixture
def settings():
    from stone.config import get_settings

    return get_settings()


@pytest.fixture
def pool(settings):
    """Fresh in-memory database per test"""
    from stone.database import DatabasePool

    db_pool = DatabasePool.from_settings(settings)
    db_pool.create_all()

    yield db_pool

    db_pool.close()


@pytest.fixture
def app(settings, pool):
    from stone import create_app

    return create_app(settings, pool)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


def make_csrf_app(config=None, calls=None):
    """Minimal app: error rendering + CSRF guard + echo routes"""
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse

    from stone.middleware.csrf import CSRFMiddleware, get_csrf_token
    from stone.middleware.exception_handlers import (
        exception_handler_middleware,
    )

    app = FastAPI()
    app.add_middleware(CSRFMiddleware, config=config)
    app.middleware("http")(exception_handler_middleware)
    calls = calls if calls is not None else []
    context_key = config.with_defaults().context_key if config else "csrf"

    @app.api_route(
        "/echo",
        methods=["GET", "HEAD", "OPTIONS", "TRACE", "POST", "PUT", "DELETE"],
    )
    async def echo(request: Request):
        calls.append(request.method)
        return JSONResponse(
            {"csrf": get_csrf_token(request, context_key)},
            headers={"Vary": "Origin"},
        )

    @app.post("/form")
    async def form(request: Request):
        calls.append(request.method)
        submitted = await request.form()
        return {
            "csrf": get_csrf_token(request, context_key),
            "name": submitted.get("name"),
        }

    @app.api_route("/boom", methods=["GET", "POST"])
    async def boom(request: Request):
        calls.append(request.method)
        raise RuntimeError("handler failed")

    return app


@pytest.fixture
def csrf_client():
    """Build a TestClient around make_csrf_app"""
    from fastapi.testclient import TestClient

    def _client(config=None, calls=None):
        return TestClient(make_csrf_app(config, calls))

    return _client


@pytest.fixture
def issued_cookie():
    """Parse the Set-Cookie header for `name`, or None"""

    def _issued_cookie(response, name="_csrf"):
        for header in response.headers.get_list("set-cookie"):
            cookie = SimpleCookie()
            cookie.load(header)
            if name in cookie:
                return cookie[name]
        return None

    return _issued_cookie


@pytest.fixture
def csrf_headers(client):
    """Fetch a token from the full app and build headers that echo it"""

    def _headers():
        response = client.get("/api/csrf")
        token = response.json()["data"]["csrf_token"]
        return {"X-CSRF-Token": token, "Cookie": f"_csrf={token}"}

    return _headers
