"""
stone/config_validator.py

Validate configuration on startup
"""

import logging

from pydantic import ValidationError

from stone.config import csrf_config
from stone.middleware.csrf import parse_token_lookup

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    pass


class ConfigValidator:
    def __init__(self, settings):
        self.settings = settings
        self.errors = []
        self.warnings = []

    def validate_database(self):
        url = self.settings.DATABASE_URL
        if not url:
            self.errors.append(
                "DATABASE_URL not set and no db block in "
                f"{self.settings.CONFIG_FILE}"
            )
        elif url.startswith("sqlite"):
            self.warnings.append(
                "Using SQLite - not recommended for production"
            )

        if self.settings.DATABASE_POOL_TIMEOUT <= 0:
            self.errors.append("DATABASE_POOL_TIMEOUT must be positive")

    def validate_csrf(self):
        try:
            config = csrf_config(self.settings).with_defaults()
        except ValidationError as e:
            for error in e.errors():
                field = "_".join(str(part) for part in error["loc"])
                self.errors.append(f"CSRF_{field.upper()}: {error['msg']}")
            return

        # Empty settings fall back to the middleware defaults
        try:
            parse_token_lookup(config.token_lookup)
        except ValueError as e:
            self.errors.append(f"CSRF_TOKEN_LOOKUP: {e}")

    def validate_environment(self):
        if self.settings.STONE_CONFIG == "production":
            if self.settings.DEBUG:
                self.errors.append("DEBUG=True in production")
            if not self.settings.CSRF_COOKIE_SECURE:
                self.warnings.append(
                    "CSRF cookie is not marked secure in production"
                )

    def validate_all(self):
        self.validate_database()
        self.validate_csrf()
        self.validate_environment()

        return self.errors, self.warnings

    def check_and_raise_on_errors(self):
        """Log warnings, raise ConfigError if critical errors found"""
        errors, warnings = self.validate_all()

        for warning in warnings:
            logger.warning(f"Configuration warning: {warning}")

        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ConfigError("; ".join(errors))

        logger.debug("Configuration validation passed")
