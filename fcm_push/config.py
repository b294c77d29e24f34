from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


SUPPORTED_MESSAGE_MODES = {"data_only", "notification_only", "notification_and_data"}


def _get_first_set(*env_names: str) -> str:
    for env_name in env_names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _normalize_database_url(raw_url: str) -> str:
    if not raw_url:
        return raw_url
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return raw_url


def _build_database_url() -> str:
    explicit = _get_first_set("FCM_DATABASE_URL", "DATABASE_URL")
    if explicit:
        return _normalize_database_url(explicit)

    # Local dev fallback when DATABASE_URL is not set.
    sqlite_file = Path(os.getenv("SQLITE_DB_PATH", "./fcm_push.db")).as_posix()
    if sqlite_file.startswith("/"):
        return f"sqlite:///{sqlite_file}"
    return f"sqlite:///./{sqlite_file.lstrip('./')}"


def _default_mode() -> str:
    raw = os.getenv("FCM_DEFAULT_MODE", "data_only").strip().lower()
    if raw not in SUPPORTED_MESSAGE_MODES:
        raise ValueError(f"Invalid FCM_DEFAULT_MODE: {raw}. Supported values: {sorted(SUPPORTED_MESSAGE_MODES)}")
    return raw


def _private_key() -> str:
    # Keys pasted into .env files usually carry escaped newlines.
    return os.getenv("FCM_PRIVATE_KEY", "").replace("\\n", "\n").strip()


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "fcm_push")
    app_debug: bool = _env_bool("APP_DEBUG", "false")

    database_url: str = _build_database_url()

    project_id: str = os.getenv("FCM_PROJECT_ID", "").strip()
    client_email: str = os.getenv("FCM_CLIENT_EMAIL", "").strip()
    private_key: str = _private_key()
    credentials_file: str = os.getenv("FCM_CREDENTIALS_FILE", "").strip()

    base_url: str = os.getenv("FCM_BASE_URL", "https://fcm.googleapis.com/v1/projects").rstrip("/")
    oauth_url: str = os.getenv("FCM_OAUTH_URL", "https://oauth2.googleapis.com/token")
    scope: str = os.getenv("FCM_SCOPE", "https://www.googleapis.com/auth/cloud-platform")
    timeout: float = float(os.getenv("FCM_TIMEOUT", "30"))

    jwt_expiry: int = int(os.getenv("FCM_JWT_EXPIRY", "3600"))
    cache_token: bool = _env_bool("FCM_CACHE_TOKEN", "true")
    cache_prefix: str = os.getenv("FCM_CACHE_PREFIX", "fcm_notifications_token")

    max_auth_retries: int = int(os.getenv("FCM_MAX_AUTH_RETRIES", "2"))
    auth_retry_delay: float = float(os.getenv("FCM_AUTH_RETRY_DELAY", "1.0"))
    http_max_attempts: int = int(os.getenv("FCM_HTTP_MAX_ATTEMPTS", "3"))
    http_backoff: float = float(os.getenv("FCM_HTTP_BACKOFF", "0.5"))

    default_mode: str = _default_mode()
    token_column: str = os.getenv("FCM_TOKEN_COLUMN", "token").strip() or "token"
    auto_cleanup_tokens: bool = _env_bool("FCM_AUTO_CLEANUP_TOKENS", "true")
    cleanup_lock_seconds: int = int(os.getenv("FCM_CLEANUP_LOCK_SECONDS", "10"))
    batch_workers: int = int(os.getenv("FCM_BATCH_WORKERS", "1"))


settings = Settings()


def get_settings() -> Settings:
    return settings
