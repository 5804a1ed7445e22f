"""
stone/config.py

Project configuration file, with environment configs
"""

import json
import logging
import os
import pathlib
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class DBConfig(BaseModel):
    """`db` block of the JSON config file"""

    host: str = "localhost"
    port: int = 5432
    database: str
    user: str
    password: str = ""

    def url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class FileConfig(BaseModel):
    db: Optional[DBConfig] = None


def load_config_file(path) -> Optional[FileConfig]:
    """Read the JSON config file, returning None when it does not exist"""
    path = pathlib.Path(path)
    if not path.is_file():
        return None

    try:
        data = json.loads(path.read_text())
        return FileConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e


def resolve_database_url(config_file: str) -> Optional[str]:
    """DATABASE_URL wins; otherwise build one from the config file"""
    url = os.environ.get("DATABASE_URL")
    if url:
        return url

    file_config = load_config_file(config_file)
    if file_config and file_config.db:
        logger.info(f"Database settings loaded from {config_file}")
        return file_config.db.url()
    return None


class BaseConfig:
    BASE_DIR: pathlib.Path = pathlib.Path(__file__).parent.parent

    STONE_CONFIG: str = os.environ.get("STONE_CONFIG", "development")
    CONFIG_FILE: str = os.environ.get(
        "STONE_CONFIG_FILE", str(BASE_DIR / "config" / "configs.json")
    )

    HOST: str = os.environ.get("HOST", "0.0.0.0")
    PORT: int = int(os.environ.get("PORT", "8090"))
    DEBUG: bool = False
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ORIGINS: list = os.environ.get(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:8090"
    ).split(",")

    # Database
    DATABASE_URL: Optional[str] = resolve_database_url(CONFIG_FILE)
    DATABASE_CONNECT_DICT: dict = {"connect_timeout": 10}
    DATABASE_POOL_SIZE: int = int(os.environ.get("DATABASE_POOL_SIZE", "20"))
    DATABASE_MAX_OVERFLOW: int = int(
        os.environ.get("DATABASE_MAX_OVERFLOW", "40")
    )
    # Seconds to wait for a free connection
    DATABASE_POOL_TIMEOUT: int = int(
        os.environ.get("DATABASE_POOL_TIMEOUT", "5")
    )
    DATABASE_POOL_RECYCLE: int = int(
        os.environ.get("DATABASE_POOL_RECYCLE", "3600")
    )

    # CSRF; zero/empty values fall back to the middleware defaults
    CSRF_TOKEN_LENGTH: int = int(os.environ.get("CSRF_TOKEN_LENGTH", "0"))
    CSRF_TOKEN_LOOKUP: str = os.environ.get(
        "CSRF_TOKEN_LOOKUP", "header:X-CSRF-Token"
    )
    CSRF_CONTEXT_KEY: str = os.environ.get("CSRF_CONTEXT_KEY", "csrf")
    CSRF_COOKIE_NAME: str = os.environ.get("CSRF_COOKIE_NAME", "_csrf")
    CSRF_COOKIE_DOMAIN: str = os.environ.get("CSRF_COOKIE_DOMAIN", "")
    CSRF_COOKIE_PATH: str = os.environ.get("CSRF_COOKIE_PATH", "/")
    CSRF_COOKIE_MAX_AGE: int = int(
        os.environ.get("CSRF_COOKIE_MAX_AGE", "86400")
    )
    CSRF_COOKIE_SECURE: bool = _env_bool("CSRF_COOKIE_SECURE")
    CSRF_COOKIE_HTTP_ONLY: bool = _env_bool("CSRF_COOKIE_HTTP_ONLY")


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG: bool = False
    CSRF_COOKIE_SECURE: bool = _env_bool("CSRF_COOKIE_SECURE", "true")


class TestingConfig(BaseConfig):
    DATABASE_URL: str = "sqlite://"
    DATABASE_CONNECT_DICT: dict = {"check_same_thread": False}
    CSRF_COOKIE_SECURE: bool = False


CONFIG_CLASSES = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


@lru_cache()
def get_settings():
    config_name = os.environ.get("STONE_CONFIG", "development")
    try:
        config_cls = CONFIG_CLASSES[config_name]
    except KeyError:
        raise ValueError(f"Unknown STONE_CONFIG: {config_name}") from None
    settings = config_cls()
    settings.STONE_CONFIG = config_name
    return settings


def csrf_config(settings):
    """Build the CSRF middleware config from settings"""
    from stone.middleware.csrf import CSRFConfig

    return CSRFConfig(
        token_length=settings.CSRF_TOKEN_LENGTH,
        token_lookup=settings.CSRF_TOKEN_LOOKUP,
        context_key=settings.CSRF_CONTEXT_KEY,
        cookie_name=settings.CSRF_COOKIE_NAME,
        cookie_domain=settings.CSRF_COOKIE_DOMAIN,
        cookie_path=settings.CSRF_COOKIE_PATH,
        cookie_max_age=settings.CSRF_COOKIE_MAX_AGE,
        cookie_secure=settings.CSRF_COOKIE_SECURE,
        cookie_http_only=settings.CSRF_COOKIE_HTTP_ONLY,
    )
