from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

import jwt

from fcm_push.config import Settings
from fcm_push.integrations.credentials import ServiceCredential
from fcm_push.integrations.http_client import GatewayTransportError, HttpClient
from fcm_push.notifications.errors import ConfigurationError, TokenExchangeError

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
EXPIRY_MARGIN_SECONDS = 300


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class AccessTokenCache:
    def __init__(
        self,
        credential: ServiceCredential,
        settings: Settings,
        http_client: HttpClient | None = None,
        clock=time.time,
    ) -> None:
        self.credential = credential
        self.settings = settings
        self.http_client = http_client or HttpClient(settings.http_max_attempts, settings.http_backoff)
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = threading.Lock()
        self.exchange_count = 0

    @property
    def cache_key(self) -> str:
        return f"{self.settings.cache_prefix}:{self.credential.client_email}:access_token"

    def get_token(self) -> AccessToken:
        token = self._token
        if token is not None and token.is_fresh(self._clock()):
            return token

        with self._lock:
            # Another caller may have refreshed while we waited.
            token = self._token
            if token is not None and token.is_fresh(self._clock()):
                return token
            token = self._refresh()
            if self.settings.cache_token:
                self._token = token
            return token

    def invalidate(self, stale: AccessToken | None = None) -> None:
        with self._lock:
            # Only evict the token the caller was rejected with, not a newer one.
            if stale is not None and self._token is not None and self._token.value != stale.value:
                return
            if self._token is not None:
                logger.info("FCM access token evicted", extra={"cache_key": self.cache_key})
            self._token = None

    def build_assertion(self, now: int | None = None) -> str:
        issued_at = int(self._clock()) if now is None else now
        claims = {
            "iss": self.credential.client_email,
            "sub": self.credential.client_email,
            "aud": self.settings.oauth_url,
            "iat": issued_at,
            "exp": issued_at + self.settings.jwt_expiry,
            "scope": self.settings.scope,
        }
        try:
            return jwt.encode(claims, self.credential.private_key, algorithm="RS256", headers={"typ": "JWT"})
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise ConfigurationError(f"Failed to sign JWT assertion: {exc}") from exc

    def _refresh(self) -> AccessToken:
        assertion = self.build_assertion()
        try:
            response = self.http_client.post_form(
                self.settings.oauth_url,
                {"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self.settings.timeout,
            )
        except GatewayTransportError as exc:
            logger.error("FCM: Failed to get access token", extra={"error": str(exc)})
            raise TokenExchangeError(str(exc)) from exc
        self.exchange_count += 1

        if not response.ok:
            logger.error(
                "FCM: Failed to get access token",
                extra={"status_code": response.status_code, "response_body": response.body},
            )
            raise TokenExchangeError(
                f"Failed to obtain access token: {response.body}",
                status_code=response.status_code,
                body=response.body,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TokenExchangeError(
                "Access token response is not JSON", status_code=response.status_code, body=response.body
            ) from exc
        value = data.get("access_token") if isinstance(data, dict) else None
        if not value:
            raise TokenExchangeError(
                "Access token not found in response", status_code=response.status_code, body=response.body
            )

        lifetime = data.get("expires_in") or self.settings.jwt_expiry
        try:
            lifetime = int(lifetime)
        except (TypeError, ValueError):
            lifetime = self.settings.jwt_expiry
        expires_at = self._clock() + max(0, lifetime - EXPIRY_MARGIN_SECONDS)
        logger.info("FCM access token refreshed", extra={"cache_key": self.cache_key, "expires_in": lifetime})
        return AccessToken(value=str(value), expires_at=expires_at)


_shared_caches: dict[str, AccessTokenCache] = {}
_shared_lock = threading.Lock()


def shared_token_cache(
    credential: ServiceCredential,
    settings: Settings,
    http_client: HttpClient | None = None,
) -> AccessTokenCache:
    key = f"{settings.cache_prefix}:{credential.client_email}"
    with _shared_lock:
        cache = _shared_caches.get(key)
        if cache is None or cache.credential != credential:
            cache = AccessTokenCache(credential, settings, http_client)
            _shared_caches[key] = cache
        return cache


def reset_shared_caches() -> None:
    with _shared_lock:
        _shared_caches.clear()
