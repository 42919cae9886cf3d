"""Configuration subsystem for CertKeeper.

Public API::

    from certkeeper.config import get_config, CertkeeperConfig

    # At startup (CLI only):
    CertkeeperConfig(config_file="config.yaml")

    # Everywhere else:
    cfg    = get_config()
    window = cfg.settings.certificates.expiring_soon_days   # typed access
    host   = cfg.get("database.host")                       # dynamic dot-path
"""

from certkeeper.config.certkeeper_config import (
    CertkeeperConfig,
    ConfigValidationError,
    get_config,
)
from certkeeper.config.settings import (
    AuditLogSettings,
    AuthSettings,
    CertificateSettings,
    CertkeeperSettings,
    DatabaseSettings,
    FolderSettings,
    LoggingSettings,
    LoginThrottleSettings,
    ProxySettings,
    SecuritySettings,
    ServerSettings,
    build_settings,
)

__all__ = [
    "AuditLogSettings",
    "AuthSettings",
    "CertificateSettings",
    "CertkeeperConfig",
    "CertkeeperSettings",
    "ConfigValidationError",
    "DatabaseSettings",
    "FolderSettings",
    "LoggingSettings",
    "LoginThrottleSettings",
    "ProxySettings",
    "SecuritySettings",
    "ServerSettings",
    "build_settings",
    "get_config",
]
