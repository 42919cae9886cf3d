"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from certkeeper.config import get_config

    certs = get_config().settings.certificates
    print(certs.expiring_soon_days, certs.max_upload_bytes)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server configuration (bind address, workers, timeouts)."""

    external_url: str
    bind: str
    port: int
    workers: int
    worker_class: str
    timeout: int
    graceful_timeout: int
    keepalive: int
    max_requests: int
    max_requests_jitter: int


def _build_server(data: dict | None) -> ServerSettings:
    d = data or {}
    return ServerSettings(
        external_url=d.get("external_url", ""),
        bind=d.get("bind", "0.0.0.0"),  # noqa: S104
        port=d.get("port", 8080),
        workers=d.get("workers", 4),
        worker_class=d.get("worker_class", "sync"),
        timeout=d.get("timeout", 30),
        graceful_timeout=d.get("graceful_timeout", 30),
        keepalive=d.get("keepalive", 2),
        max_requests=d.get("max_requests", 0),
        max_requests_jitter=d.get("max_requests_jitter", 0),
    )


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProxySettings:
    """Reverse proxy configuration (trusted headers, forwarded-for)."""

    enabled: bool
    trusted_proxies: tuple[str, ...]
    forwarded_for_header: str
    forwarded_proto_header: str


def _build_proxy(data: dict | None) -> ProxySettings:
    d = data or {}
    return ProxySettings(
        enabled=d.get("enabled", False),
        trusted_proxies=tuple(d.get("trusted_proxies", [])),
        forwarded_for_header=d.get("forwarded_for_header", "X-Forwarded-For"),
        forwarded_proto_header=d.get("forwarded_proto_header", "X-Forwarded-Proto"),
    )


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginThrottleSettings:
    """Failed-login lockout thresholds."""

    max_attempts: int
    window_seconds: int
    lockout_seconds: int


@dataclass(frozen=True)
class SecuritySettings:
    """HTTP hardening and login throttling."""

    hsts_max_age_seconds: int
    max_request_body_bytes: int
    login: LoginThrottleSettings


def _build_security(data: dict | None) -> SecuritySettings:
    d = data or {}
    login = d.get("login") or {}
    return SecuritySettings(
        hsts_max_age_seconds=d.get("hsts_max_age_seconds", 63072000),
        max_request_body_bytes=d.get("max_request_body_bytes", 65536),
        login=LoginThrottleSettings(
            max_attempts=login.get("max_attempts", 5),
            window_seconds=login.get("window_seconds", 300),
            lockout_seconds=login.get("lockout_seconds", 900),
        ),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditLogSettings:
    """Audit log output settings (file, syslog, rotation)."""

    enabled: bool
    file: str | None
    syslog: bool
    max_file_size_bytes: int
    backup_count: int


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format, audit)."""

    level: str
    format: str
    audit: AuditLogSettings


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    a = d.get("audit") or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
        audit=AuditLogSettings(
            enabled=a.get("enabled", True),
            file=a.get("file"),
            syslog=a.get("syslog", False),
            max_file_size_bytes=a.get("max_file_size_bytes", 104857600),
            backup_count=a.get("backup_count", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """PostgreSQL connection and pool settings."""

    host: str
    port: int
    database: str
    user: str
    password: str
    sslmode: str
    min_connections: int
    max_connections: int
    connection_timeout: float
    auto_setup: bool


def _build_database(data: dict | None) -> DatabaseSettings:
    d = data or {}
    return DatabaseSettings(
        host=d.get("host", "localhost"),
        port=d.get("port", 5432),
        database=d["database"],
        user=d["user"],
        password=d.get("password", ""),
        sslmode=d.get("sslmode", "prefer"),
        min_connections=d.get("min_connections", 2),
        max_connections=d.get("max_connections", 10),
        connection_timeout=d.get("connection_timeout", 30.0),
        auto_setup=d.get("auto_setup", False),
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthSettings:
    """Bearer-token authentication for the REST API."""

    base_path: str
    token_secret: str
    token_expiry_seconds: int
    initial_admin_username: str
    initial_admin_email: str
    password_length: int


def _build_auth(data: dict | None) -> AuthSettings:
    d = data or {}
    return AuthSettings(
        base_path=d.get("base_path", "/api"),
        token_secret=d.get("token_secret", ""),
        token_expiry_seconds=d.get("token_expiry_seconds", 3600),
        initial_admin_username=d.get("initial_admin_username", "admin"),
        initial_admin_email=d.get("initial_admin_email", ""),
        password_length=d.get("password_length", 20),
    )


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertificateSettings:
    """Upload limits and expiry classification."""

    expiring_soon_days: int
    max_upload_bytes: int
    allowed_extensions: tuple[str, ...]


def _build_certificates(data: dict | None) -> CertificateSettings:
    d = data or {}
    return CertificateSettings(
        expiring_soon_days=d.get("expiring_soon_days", 30),
        max_upload_bytes=d.get("max_upload_bytes", 5 * 1024 * 1024),
        allowed_extensions=tuple(
            ext.lower()
            for ext in d.get(
                "allowed_extensions",
                [".pem", ".crt", ".cer", ".der", ".ca-bundle"],
            )
        ),
    )


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FolderSettings:
    default_upload_folder: str


def _build_folders(data: dict | None) -> FolderSettings:
    d = data or {}
    return FolderSettings(
        default_upload_folder=d.get("default_upload_folder", "temp-uploads"),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertkeeperSettings:
    server: ServerSettings
    proxy: ProxySettings
    security: SecuritySettings
    logging: LoggingSettings
    database: DatabaseSettings
    auth: AuthSettings
    certificates: CertificateSettings
    folders: FolderSettings


def build_settings(data: dict) -> CertkeeperSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CertkeeperConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return CertkeeperSettings(
        server=_build_server(data.get("server")),
        proxy=_build_proxy(data.get("proxy")),
        security=_build_security(data.get("security")),
        logging=_build_logging(data.get("logging")),
        database=_build_database(data.get("database")),
        auth=_build_auth(data.get("auth")),
        certificates=_build_certificates(data.get("certificates")),
        folders=_build_folders(data.get("folders")),
    )
