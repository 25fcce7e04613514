"""Common runtime devkit for service infrastructure concerns."""

from devkit.clock import now_utc, now_utc_iso
from devkit.config import ConfigurationError, ServiceSettings, load_settings
from devkit.db import (
    AsyncDatabaseManager,
    Base,
    create_all_tables,
    create_async_engine,
    create_session_factory,
    is_postgres_dsn,
    is_transient_db_error,
    normalize_postgres_dsn,
)
from devkit.observability import (
    configure_logging,
    configure_otel,
    configure_probe_access_log_filter,
    install_secret_redaction,
)

__all__ = [
    "AsyncDatabaseManager",
    "Base",
    "ConfigurationError",
    "ServiceSettings",
    "configure_logging",
    "configure_otel",
    "configure_probe_access_log_filter",
    "create_all_tables",
    "create_async_engine",
    "create_session_factory",
    "install_secret_redaction",
    "is_postgres_dsn",
    "is_transient_db_error",
    "load_settings",
    "normalize_postgres_dsn",
    "now_utc",
    "now_utc_iso",
]
