"""Environment-specific configuration overrides."""

from typing import Any, Dict


class _EnvironmentConfig:
    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Return config as dictionary."""
        return {
            key: value
            for klass in reversed(cls.__mro__)
            for key, value in vars(klass).items()
            if not key.startswith("_")
            and not callable(value)
            and not isinstance(value, classmethod)
        }


class DevelopmentConfig(_EnvironmentConfig):
    """Development environment overrides."""

    debug: bool = True
    development_mode: bool = True
    log_level: str = "DEBUG"


class TestingConfig(_EnvironmentConfig):
    """Testing environment configuration."""

    debug: bool = True
    development_mode: bool = True
    database_url: str = "sqlite:////tmp/eventthreads-test/test.db"
    admin_password: str = "test-admin-password"
    enable_audit_log: bool = False


class ProductionConfig(_EnvironmentConfig):
    """Production environment configuration."""

    debug: bool = False
    development_mode: bool = False
    log_level: str = "INFO"
    enable_audit_log: bool = True
