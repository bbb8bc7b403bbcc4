"""Configuration loading with environment detection."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from dotenv import load_dotenv

from eventthreads.exceptions import ConfigurationError, InvalidConfigError

from .environments import DevelopmentConfig, ProductionConfig, TestingConfig
from .settings import Settings

logger = structlog.get_logger()


def load_config(
    env: Optional[str] = None, config_file: Optional[Path] = None
) -> Settings:
    """Load configuration based on environment.

    Args:
        env: Environment name (development, testing, production)
        config_file: Optional path to configuration file

    Returns:
        Configured Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    env_file = config_file or Path(".env")
    if env_file.exists():
        logger.info("Loading .env file", path=str(env_file))
        load_dotenv(env_file)
    else:
        logger.warning("No .env file found", path=str(env_file))

    env = env or os.getenv("ENVIRONMENT", "development")
    logger.info("Loading configuration", environment=env)

    try:
        settings = Settings()
        settings = _apply_environment_overrides(settings, env)
        _validate_config(settings)
    except ConfigurationError:
        raise
    except Exception as e:
        logger.error("Failed to load configuration", error=str(e), environment=env)
        raise ConfigurationError(f"Configuration loading failed: {e}") from e

    logger.info(
        "Configuration loaded successfully",
        environment=env,
        debug=settings.debug,
        database_url=settings.database_url,
        allowed_thread_durations=settings.allowed_thread_durations,
        admin_login_enabled=settings.admin_password is not None,
    )
    return settings


def _environment_overrides(env: Optional[str]) -> Dict[str, Any]:
    if env == "development":
        return DevelopmentConfig.as_dict()
    if env == "testing":
        return TestingConfig.as_dict()
    if env == "production":
        return ProductionConfig.as_dict()
    logger.warning("Unknown environment, using default settings", environment=env)
    return {}


def _apply_environment_overrides(settings: Settings, env: Optional[str]) -> Settings:
    """Apply environment-specific configuration overrides.

    Overrides only fill in what the environment left unset, so explicit
    environment variables keep precedence. Values are re-validated.
    """
    overrides = _environment_overrides(env)
    if not overrides:
        return settings

    values = settings.model_dump()
    for key, value in overrides.items():
        if key in settings.model_fields_set or key not in values:
            continue
        values[key] = value
        logger.debug(
            "Applied environment override", key=key, value=value, environment=env
        )

    return Settings.model_validate(values)


def _validate_config(settings: Settings) -> None:
    """Perform additional runtime validation."""
    if settings.database_url.startswith("sqlite:///"):
        db_path = settings.database_path
        if db_path and str(db_path) != ":memory:":
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise InvalidConfigError(
                    f"Cannot create database directory: {db_path.parent}"
                ) from e

    if settings.is_production and settings.admin_password is None:
        logger.warning("ADMIN_PASSWORD not set, admin login is disabled")


def create_test_config(**overrides: Any) -> Settings:
    """Create configuration for testing with optional overrides.

    Args:
        **overrides: Configuration values to override

    Returns:
        Settings instance configured for testing
    """
    test_values = TestingConfig.as_dict()
    test_values.update(overrides)

    settings = Settings(_env_file=None, **test_values)  # type: ignore[call-arg]
    if settings.database_path:
        settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    return settings
