"""
stone/middleware/csrf.py

CSRF protection middleware (double submit cookie)

Every response carries the token in a cookie. State-changing requests must
echo the cookie value back through the configured lookup (header, form field
or query parameter).
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional, Union

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from starlette.middleware.base import BaseHTTPMiddleware

TOKEN_ALPHABET = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
)

# Methods defined as safe by RFC 7231
CSRF_SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}

INVALID_TOKEN_MESSAGE = "csrf token is invalid"

# request.state attributes owned by other layers
RESERVED_CONTEXT_KEYS = {"request_id", "_state"}


class CSRFExtractionError(HTTPException):
    """Client did not submit the token where the lookup expects it"""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST, detail=detail
        )


class CSRFTokenMismatch(HTTPException):
    """Submitted token does not match the cookie token"""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=INVALID_TOKEN_MESSAGE,
        )


class CSRFConfig(BaseModel):
    """
    CSRF middleware settings.

    Zero values mean "use the default", see `with_defaults`.
    """

    model_config = ConfigDict(frozen=True)

    token_length: int = Field(0, ge=0)
    # "<source>:<key>" where source is header, form or query
    token_lookup: str = ""
    context_key: str = ""
    cookie_name: str = ""
    cookie_domain: str = ""
    cookie_path: str = ""
    cookie_max_age: int = Field(0, ge=0)
    cookie_secure: bool = False
    cookie_http_only: bool = False
    cookie_same_site: Optional[Literal["lax", "strict", "none"]] = "lax"

    @field_validator("context_key")
    @classmethod
    def context_key_not_reserved(cls, v: str) -> str:
        if v in RESERVED_CONTEXT_KEYS:
            raise ValueError(f"context key {v!r} is reserved")
        return v

    def with_defaults(self) -> "CSRFConfig":
        defaults = DEFAULT_CSRF_CONFIG
        return self.model_copy(
            update={
                "token_length": self.token_length or defaults.token_length,
                "token_lookup": self.token_lookup or defaults.token_lookup,
                "context_key": self.context_key or defaults.context_key,
                "cookie_name": self.cookie_name or defaults.cookie_name,
                "cookie_max_age": (
                    self.cookie_max_age or defaults.cookie_max_age
                ),
            }
        )


DEFAULT_CSRF_CONFIG = CSRFConfig(
    token_length=32,
    token_lookup="header:X-CSRF-Token",
    context_key="csrf",
    cookie_name="_csrf",
    cookie_max_age=86400,
)


@dataclass(frozen=True)
class HeaderLookup:
    key: str

    async def extract(self, request: Request) -> str:
        # A missing header is submitted as an empty token, not an error
        return request.headers.get(self.key, "")


@dataclass(frozen=True)
class FormLookup:
    key: str

    async def extract(self, request: Request) -> str:
        # Cache the raw body so the downstream handler can still read it
        await request.body()
        form = await request.form()
        token = form.get(self.key)
        if not token or not isinstance(token, str):
            raise CSRFExtractionError("empty csrf token in form param")
        return token


@dataclass(frozen=True)
class QueryLookup:
    key: str

    async def extract(self, request: Request) -> str:
        token = request.query_params.get(self.key)
        if not token:
            raise CSRFExtractionError("empty csrf token in query param")
        return token


TokenLookup = Union[HeaderLookup, FormLookup, QueryLookup]

LOOKUP_SOURCES = {
    "header": HeaderLookup,
    "form": FormLookup,
    "query": QueryLookup,
}


def parse_token_lookup(spec: str) -> TokenLookup:
    """Parse "<source>:<key>" into a lookup"""
    source, sep, key = spec.partition(":")
    if not sep or not key:
        raise ValueError(
            f"Invalid token lookup {spec!r}, expected '<source>:<key>'"
        )
    try:
        return LOOKUP_SOURCES[source](key)
    except KeyError:
        raise ValueError(
            f"Unknown token lookup source {source!r}, "
            f"expected one of {sorted(LOOKUP_SOURCES)}"
        ) from None


def generate_token(length: int) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def validate_token(token: str, client_token: str) -> bool:
    """Constant time comparison"""
    return secrets.compare_digest(
        token.encode("utf-8"), client_token.encode("utf-8")
    )


def get_csrf_token(
    request: Request, context_key: str = "csrf"
) -> Optional[str]:
    """Token stored on the request by CSRFMiddleware"""
    return getattr(request.state, context_key, None)


class CSRFMiddleware(BaseHTTPMiddleware):
    """Validate CSRF token for state-changing requests"""

    def __init__(self, app, config: Optional[CSRFConfig] = None):
        super().__init__(app)
        self.config = (config or CSRFConfig()).with_defaults()
        self.lookup = parse_token_lookup(self.config.token_lookup)

    async def dispatch(self, request: Request, call_next):
        config = self.config

        token = request.cookies.get(config.cookie_name)
        if not token:
            token = generate_token(config.token_length)

        if request.method not in CSRF_SAFE_METHODS:
            client_token = await self.lookup.extract(request)
            if not validate_token(token, client_token):
                raise CSRFTokenMismatch()

        setattr(request.state, config.context_key, token)

        try:
            response = await call_next(request)
        except Exception as exc:
            # The error layer imports the CSRF exceptions from this module
            from stone.middleware.exception_handlers import render_exception

            response = render_exception(request, exc)

        response.set_cookie(
            key=config.cookie_name,
            value=token,
            expires=datetime.now(timezone.utc)
            + timedelta(seconds=config.cookie_max_age),
            path=config.cookie_path or None,
            domain=config.cookie_domain or None,
            secure=config.cookie_secure,
            httponly=config.cookie_http_only,
            samesite=config.cookie_same_site,
        )
        # Shared caches must not serve one client's token to another
        response.headers.append("Vary", "Cookie")

        return response
